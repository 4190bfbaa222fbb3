"""
Travel Log Backend — Submission Pipeline Value Types
=====================================================

Immutable values passed between pipeline stages:

    RawSubmission ──ingest──▶ Submission ──validate──▶ LogEntryCreate

None of them is mutated after construction; each stage builds a new value.
"""

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, AsyncIterator, Mapping, Optional


@dataclass(frozen=True)
class RawSubmission:
    """
    Everything the pipeline needs from one HTTP request, made explicit.

    Attributes:
        api_key:        X-API-KEY header value, or None when absent
        peer_address:   network-layer remote address of the connection
        forwarded_for:  X-Forwarded-For header (only honoured from trusted proxies)
        content_type:   Content-Type header
        body:           async iterator over the request body chunks
    """
    api_key: Optional[str]
    peer_address: Optional[str]
    forwarded_for: Optional[str]
    content_type: str
    body: AsyncIterator[bytes]


@dataclass(frozen=True)
class UploadedFile:
    """An image the ingestor accepted and wrote into the upload namespace."""
    original_filename: str
    content_type: str
    size: int
    storage_name: str
    path: Path
    url_path: str


@dataclass(frozen=True)
class Submission:
    """
    Normalized body of a write request.

    `fields` never contains the credential; it is split out into
    `credential` during ingestion.
    """
    fields: Mapping[str, Any]
    credential: Optional[str] = None
    upload: Optional[UploadedFile] = None

    @classmethod
    def build(
        cls,
        fields: Mapping[str, Any],
        credential_field: str,
        upload: Optional[UploadedFile] = None,
    ) -> "Submission":
        """Split the credential out of `fields` without touching the input."""
        credential = fields.get(credential_field)
        if credential is not None and not isinstance(credential, str):
            credential = str(credential)
        cleaned = {k: v for k, v in fields.items() if k != credential_field}
        return cls(
            fields=MappingProxyType(cleaned),
            credential=credential,
            upload=upload,
        )
