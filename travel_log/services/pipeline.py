"""
Travel Log Backend — Submission Pipeline
==========================================

What:  Runs one write request through every stage and returns the stored
       record, or raises the first stage's error.
Why:   One place owns stage order and cleanup, so routes stay thin and each
       stage can be swapped for a mock in tests.
Who:   Built once per app by create_app(); called by POST /api/logs.

Orchestration Flow (POST /api/logs):
    ┌──────────┐   ┌────────────┐   ┌──────────┐   ┌──────────┐   ┌─────────┐
    │  Auth    │──▶│ Rate limit │──▶│  Ingest  │──▶│ Validate │──▶│ Persist │
    │ (header) │   │ (per addr) │   │ (+image) │   │          │   │         │
    └──────────┘   └────────────┘   └──────────┘   └──────────┘   └─────────┘

    Received → Authenticated → RateChecked → Ingested → Validated → Persisted
    Any stage may fail; there is no retry loop.

Credential resolution:
    The X-API-KEY header is preferred and checked before rate limiting.
    Without the header, the `apiKey` body field is checked right after
    ingestion, before validation. The credential never reaches the
    validator or the store.
    A header-less request is therefore rate limited and ingested before its
    key is known, and a malformed upload reports 400 ahead of a bad key.

On failure after ingestion the stored image (if any) is deleted, so a
rejected submission never leaves a file behind.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from travel_log.config import Settings
from travel_log.database import Database
from travel_log.schemas.log_entry import LogEntryResponse
from travel_log.schemas.submission import RawSubmission
from travel_log.services.auth_service import Authenticator
from travel_log.services.file_service import FileService
from travel_log.services.ingest_service import MultipartIngestor
from travel_log.services.log_entry_service import LogEntryService
from travel_log.services.rate_limiter import RateLimiter, resolve_client_identity
from travel_log.services.validation_service import FieldValidator

logger = logging.getLogger(__name__)


class SubmissionPipeline:
    """
    Stateless orchestrator; every collaborator is injected at construction.

    Use `SubmissionPipeline.from_settings()` to wire the default stages.
    """

    def __init__(
        self,
        authenticator: Authenticator,
        rate_limiter: RateLimiter,
        ingestor: MultipartIngestor,
        validator: FieldValidator,
        entries: LogEntryService,
        trusted_proxies: Optional[list] = None,
    ):
        self.authenticator = authenticator
        self.rate_limiter = rate_limiter
        self.ingestor = ingestor
        self.validator = validator
        self.entries = entries
        self.trusted_proxies = trusted_proxies or []

    @classmethod
    def from_settings(cls, settings: Settings, database: Database) -> "SubmissionPipeline":
        """Wire the default stages; the validator and ingestor share one FileService."""
        file_service = FileService(settings.upload_dir, settings.upload_url_prefix)
        return cls(
            authenticator=Authenticator(settings.api_key),
            rate_limiter=RateLimiter(
                database.session_factory,
                dialect=database.engine.dialect.name,
                window=settings.rate_limit_window,
                max_requests=settings.rate_limit_max_requests,
                store_timeout=settings.store_timeout,
            ),
            ingestor=MultipartIngestor(
                file_service,
                upload_field=settings.upload_field_name,
                credential_field=settings.credential_field_name,
                max_upload_size=settings.max_upload_size,
                max_field_size=settings.max_field_size,
                max_json_size=settings.max_json_size,
                ingest_timeout=settings.ingest_timeout,
            ),
            validator=FieldValidator(file_service),
            entries=LogEntryService(
                store_timeout=settings.store_timeout,
                retry_max_attempts=settings.retry_max_attempts,
                retry_min_wait=settings.retry_min_wait,
                retry_max_wait=settings.retry_max_wait,
            ),
            trusted_proxies=settings.trusted_proxies_list,
        )

    async def submit(self, raw: RawSubmission, db: AsyncSession) -> LogEntryResponse:
        """
        Run `raw` through every stage and return the stored record.

        Raises:
            AuthError, RateLimitError, UploadError, ValidationError,
            PersistenceError: from the first stage that fails.
        """
        header_checked = raw.api_key is not None
        if header_checked:
            self.authenticator.authenticate(raw.api_key)

        client = resolve_client_identity(
            raw.peer_address, raw.forwarded_for, self.trusted_proxies
        )
        await self.rate_limiter.hit(client)

        # Without the header the credential lives in the body, so the body is
        # read first and a malformed upload (400) is reported before a bad key.
        # Why accepted: a multipart key field can only be reached by parsing
        # past the image part. Any stored file is discarded below.
        submission = await self.ingestor.ingest(raw.content_type, raw.body)
        try:
            if not header_checked:
                self.authenticator.authenticate(submission.credential)
            command = self.validator.validate(submission)
            record = await self.entries.create_entry(db, command)
        except BaseException:
            if submission.upload is not None:
                await self.ingestor.discard(submission.upload)
            raise

        logger.info("Accepted submission from %s as entry %s", client, record.id)
        return record
