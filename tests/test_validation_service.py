"""
Travel Log Backend — Field Validator Unit Tests
==================================================

What:  Presence, type and range checks that turn a Submission into a
       LogEntryCreate.
How:   Submissions are built directly; JSON-style (native types) and
       multipart-style (strings) values are both covered.
"""

from datetime import date
from pathlib import Path

import pytest

from conftest import paris_fields
from travel_log.exceptions import ValidationError
from travel_log.schemas.submission import Submission, UploadedFile
from travel_log.services.validation_service import FieldValidator


def submission(upload=None, **fields):
    return Submission.build(fields, "apiKey", upload=upload)


@pytest.fixture
def validator(file_service):
    return FieldValidator(file_service)


class TestValidSubmissions:
    """Accepted inputs."""

    def test_json_submission(self, validator):
        command = validator.validate(submission(**paris_fields()))
        assert command.title == "Paris"
        assert command.latitude == 48.85
        assert command.longitude == 2.35
        assert command.visit_date == date(2024, 5, 1)
        assert command.rating == 0
        assert command.image is None
        assert command.comments is None

    def test_multipart_strings_are_coerced(self, validator):
        command = validator.validate(
            submission(
                title="  Kyoto ",
                latitude="35.0116",
                longitude="135.7681",
                visitDate="2023-11-20",
                rating="4",
                comments="Temples",
            )
        )
        assert command.title == "Kyoto"
        assert command.latitude == pytest.approx(35.0116)
        assert command.longitude == pytest.approx(135.7681)
        assert command.rating == 4
        assert command.comments == "Temples"

    @pytest.mark.parametrize("lat, lon", [(90, 180), (-90, -180), (0, 0), ("-90", "180.0")])
    def test_boundary_coordinates_accepted(self, validator, lat, lon):
        command = validator.validate(submission(**paris_fields(latitude=lat, longitude=lon)))
        assert command.latitude == float(lat)
        assert command.longitude == float(lon)

    def test_iso_datetime_keeps_date(self, validator):
        command = validator.validate(
            submission(**paris_fields(visitDate="2024-05-01T18:30:00.000Z"))
        )
        assert command.visit_date == date(2024, 5, 1)

    @pytest.mark.parametrize("rating, expected", [("", 0), (None, 0), (5, 5), (3.0, 3), ("-2", -2), ("7.0", 7)])
    def test_rating_coercion(self, validator, rating, expected):
        command = validator.validate(submission(**paris_fields(rating=rating)))
        assert command.rating == expected

    @pytest.mark.parametrize("rating", [2 ** 31 - 1, -(2 ** 31)])
    def test_rating_at_column_limits_accepted(self, validator, rating):
        command = validator.validate(submission(**paris_fields(rating=rating)))
        assert command.rating == rating

    def test_blank_optional_text_becomes_none(self, validator):
        command = validator.validate(submission(**paris_fields(description="   ")))
        assert command.description is None


class TestRejectedSubmissions:
    """Rejected inputs name the failing field."""

    def test_latitude_out_of_range_message(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(latitude=200)))
        err = exc_info.value
        assert err.field == "latitude"
        assert "200" in err.message
        assert err.message == "Invalid latitude: 200. Must be between -90 and 90."

    def test_longitude_out_of_range(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(longitude="-180.5")))
        assert exc_info.value.field == "longitude"
        assert "-180.5" in exc_info.value.message

    @pytest.mark.parametrize("field", ["title", "latitude", "longitude", "visitDate"])
    def test_required_field_missing(self, validator, field):
        fields = paris_fields()
        del fields[field]
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**fields))
        assert exc_info.value.field == field

    def test_blank_title_rejected(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(title="   ")))
        assert exc_info.value.field == "title"

    @pytest.mark.parametrize("value", ["north", True, [48.85], "nan", "inf"])
    def test_non_numeric_latitude_rejected(self, validator, value):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(latitude=value)))
        assert exc_info.value.field == "latitude"

    @pytest.mark.parametrize("value", ["01/05/2024", "2024-13-01", "yesterday", 20240501])
    def test_bad_visit_date_rejected(self, validator, value):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(visitDate=value)))
        assert exc_info.value.field == "visitDate"

    @pytest.mark.parametrize("value", ["four", "4.5", True, 2.5])
    def test_bad_rating_rejected(self, validator, value):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(rating=value)))
        assert exc_info.value.field == "rating"

    @pytest.mark.parametrize("field", ["latitude", "longitude"])
    def test_integer_beyond_float_range_rejected(self, validator, field):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(**{field: 10 ** 400})))
        assert exc_info.value.field == field

    @pytest.mark.parametrize("value", [10 ** 20, 2 ** 31, -(2 ** 31) - 1, "99999999999"])
    def test_rating_outside_integer_column_rejected(self, validator, value):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(rating=value)))
        assert exc_info.value.field == "rating"

    @pytest.mark.parametrize("field", ["title", "comments", "description"])
    def test_lone_surrogate_text_rejected(self, validator, field):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate(submission(**paris_fields(**{field: "Paris \ud800"})))
        assert exc_info.value.field == field


class TestImageReference:
    """The stored image reference."""

    def test_uploaded_file_wins(self, validator, file_service):
        name = file_service.generate_storage_name("a.jpg")
        upload = UploadedFile(
            original_filename="a.jpg",
            content_type="image/jpeg",
            size=10,
            storage_name=name,
            path=Path(file_service.path_for(name)),
            url_path=file_service.url_for(name),
        )
        command = validator.validate(
            submission(upload=upload, **paris_fields(image="https://example.com/x.jpg"))
        )
        assert command.image == f"/uploads/{name}"

    def test_absolute_url_kept(self, validator):
        command = validator.validate(
            submission(**paris_fields(image="https://images.example.com/paris.jpg"))
        )
        assert command.image == "https://images.example.com/paris.jpg"

    def test_managed_path_kept(self, validator, file_service):
        name = file_service.generate_storage_name("a.png")
        file_service.path_for(name).write_bytes(b"png")
        url = file_service.url_for(name)
        command = validator.validate(submission(**paris_fields(image=url)))
        assert command.image == url

    @pytest.mark.parametrize(
        "value",
        ["/etc/passwd", "../uploads/x.jpg", "javascript:alert(1)", "file:///etc/hosts", "", 42],
    )
    def test_unmanaged_reference_dropped(self, validator, value):
        command = validator.validate(submission(**paris_fields(image=value)))
        assert command.image is None

    def test_invented_upload_path_dropped(self, validator):
        command = validator.validate(
            submission(**paris_fields(image="/uploads/1714557600123-0000000000000000.jpg"))
        )
        assert command.image is None

    def test_undecodable_inline_image_dropped(self, validator):
        command = validator.validate(
            submission(**paris_fields(image="https://example.com/\ud800.jpg"))
        )
        assert command.image is None
