"""
Travel Log Backend — Field Validator
======================================

What:  Turns a normalized `Submission` into a `LogEntryCreate` command, or
       raises ValidationError naming the failing field.

Rules:
    title       required, non-empty after stripping
    latitude    required, finite number in [-90, 90]
    longitude   required, finite number in [-180, 180]
    visitDate   required, ISO date (a full ISO datetime keeps its date part)
    rating      optional 32-bit integer, default 0
    comments / description   optional text
    all text    must be encodable as UTF-8 (JSON allows lone surrogates)
    image       an uploaded file always wins; otherwise an inline value is
                kept only if it is an absolute http(s) URL or a managed
                upload path, and silently dropped if not

Multipart values arrive as strings, JSON values as native types; both are
accepted wherever the meaning is unambiguous.
"""

import logging
import math
from datetime import date, datetime
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from travel_log.exceptions import ValidationError
from travel_log.schemas.log_entry import LogEntryCreate
from travel_log.schemas.submission import Submission
from travel_log.services.file_service import FileService

logger = logging.getLogger(__name__)

LATITUDE_LIMIT = 90
LONGITUDE_LIMIT = 180

# log_entries.rating is a 32-bit INTEGER column
RATING_MIN = -(2 ** 31)
RATING_MAX = 2 ** 31 - 1


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_encodable(value: str) -> bool:
    """False for strings holding lone surrogates (valid JSON, invalid UTF-8)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class FieldValidator:
    """Presence, type and range checks for a submission."""

    def __init__(self, file_service: FileService):
        self.file_service = file_service

    def validate(self, submission: Submission) -> LogEntryCreate:
        fields = submission.fields

        title = self._required_text(fields, "title")
        visit_date = self._visit_date(fields, "visitDate")
        latitude = self._coordinate(fields, "latitude", LATITUDE_LIMIT)
        longitude = self._coordinate(fields, "longitude", LONGITUDE_LIMIT)

        if submission.upload is not None:
            image = submission.upload.url_path
        else:
            image = self._inline_image(fields.get("image"))

        return LogEntryCreate(
            title=title,
            comments=self._optional_text(fields, "comments"),
            description=self._optional_text(fields, "description"),
            rating=self._rating(fields, "rating"),
            latitude=latitude,
            longitude=longitude,
            visit_date=visit_date,
            image=image,
        )

    # ── Field checks ──────────────────────────────────────────────────────

    @staticmethod
    def _required_text(fields: Mapping[str, Any], name: str) -> str:
        value = fields.get(name)
        if _is_blank(value):
            raise ValidationError(message=f"{name} is required.", field=name)
        if not isinstance(value, str):
            raise ValidationError(message=f"{name} must be text.", field=name)
        if not _is_encodable(value):
            raise ValidationError(message=f"{name} is not valid UTF-8 text.", field=name)
        return value.strip()

    @staticmethod
    def _optional_text(fields: Mapping[str, Any], name: str) -> Optional[str]:
        value = fields.get(name)
        if _is_blank(value):
            return None
        if not isinstance(value, str):
            raise ValidationError(message=f"{name} must be text.", field=name)
        if not _is_encodable(value):
            raise ValidationError(message=f"{name} is not valid UTF-8 text.", field=name)
        return value.strip()

    @staticmethod
    def _coordinate(fields: Mapping[str, Any], name: str, limit: int) -> float:
        raw = fields.get(name)
        if _is_blank(raw):
            raise ValidationError(message=f"{name} is required.", field=name)

        shown = raw.strip() if isinstance(raw, str) else raw
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise ValidationError(
                message=f"Invalid {name}: {name} must be a number.",
                field=name,
            )
        try:
            value = float(shown)
        except ValueError:
            raise ValidationError(
                message=f"Invalid {name}: {shown!r} is not a number.",
                field=name,
                value=shown,
            )
        except OverflowError:
            # JSON integers are unbounded; anything past float range is out of range
            raise ValidationError(
                message=f"Invalid {name}: {shown}. Must be between -{limit} and {limit}.",
                field=name,
                value=shown,
            )
        if not math.isfinite(value):
            raise ValidationError(
                message=f"Invalid {name}: {shown}. Must be a finite number.",
                field=name,
                value=str(shown),
            )
        if value < -limit or value > limit:
            raise ValidationError(
                message=f"Invalid {name}: {shown}. Must be between -{limit} and {limit}.",
                field=name,
                value=shown,
            )
        return value

    @staticmethod
    def _visit_date(fields: Mapping[str, Any], name: str) -> date:
        raw = fields.get(name)
        if _is_blank(raw):
            raise ValidationError(message=f"{name} is required.", field=name)
        if not isinstance(raw, str):
            raise ValidationError(
                message=f"Invalid {name}: expected a date like 2024-05-01.",
                field=name,
            )
        text = raw.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValidationError(
                message=f"Invalid {name}: {text!r}. Expected a date like 2024-05-01.",
                field=name,
                value=text,
            )

    @classmethod
    def _rating(cls, fields: Mapping[str, Any], name: str) -> int:
        raw = fields.get(name)
        if _is_blank(raw):
            return 0
        value = cls._integer(raw, name)
        if value < RATING_MIN or value > RATING_MAX:
            raise ValidationError(
                message=f"Invalid {name}: {value}. Must be between {RATING_MIN} and {RATING_MAX}.",
                field=name,
                value=value,
            )
        return value

    @staticmethod
    def _integer(raw: Any, name: str) -> int:
        """Integer, integral float, or integral numeric string; anything else fails."""
        if isinstance(raw, bool):
            raise ValidationError(message=f"{name} must be an integer.", field=name)
        if isinstance(raw, int):
            return raw
        if isinstance(raw, float) and raw.is_integer():
            return int(raw)
        if isinstance(raw, str):
            text = raw.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                number = math.nan
            if number.is_integer():
                return int(number)
            raise ValidationError(
                message=f"Invalid {name}: {text!r} is not an integer.",
                field=name,
                value=text,
            )
        raise ValidationError(message=f"{name} must be an integer.", field=name)

    def _inline_image(self, raw: Any) -> Optional[str]:
        """Keep an absolute http(s) URL or a managed upload path; drop anything else."""
        if not isinstance(raw, str) or not raw.strip() or not _is_encodable(raw):
            return None
        value = raw.strip()
        parts = urlsplit(value)
        if parts.scheme in ("http", "https") and parts.netloc:
            return value
        if self.file_service.is_managed_url(value):
            return value
        logger.info("Dropping unmanaged image reference from submission")
        return None
