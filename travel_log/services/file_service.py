"""
Travel Log Backend — Managed Upload Namespace
===============================================

What:  Owns the directory uploaded images live in and the names they get.
How:   Every stored file gets a generated name
           <epoch-millis>-<16 hex chars><.ext>
       e.g. 1714557600123-9f86d081884c7d65.jpg. Files are created with
       exclusive mode ('xb'), so two uploads can never write the same slot.
       Only names matching that pattern are considered "managed".

Security Model:
    - No client input reaches the path except a sanitized extension
    - Files live flat in one directory; names contain no separators
    - The served URL is <upload_url_prefix>/<name>
"""

import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Optional

import aiofiles

from travel_log.exceptions import PersistenceError

logger = logging.getLogger(__name__)

STORAGE_NAME_PATTERN = re.compile(r"^\d{13}-[0-9a-f]{16}(\.[a-z0-9]{1,10})?$")
_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")


class FileService:
    """
    Names, creates, and removes files in the upload directory.

    Directory Structure:
        uploads/
        ├── 1714557600123-9f86d081884c7d65.jpg
        └── 1714557601456-2c26b46b68ffc68f.png
    """

    def __init__(self, storage_root: str, url_prefix: str = "/uploads"):
        self.storage_root = Path(storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.url_prefix = url_prefix.rstrip("/")
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    @staticmethod
    def sanitize_extension(filename: Optional[str]) -> str:
        """Lowercased extension of `filename` if it is short and alphanumeric, else ''."""
        ext = Path(filename or "").suffix.lower()
        return ext if _EXTENSION_PATTERN.match(ext) else ""

    def generate_storage_name(self, original_filename: Optional[str]) -> str:
        """Timestamp + random suffix + original extension."""
        millis = int(time.time() * 1000)
        return f"{millis:013d}-{secrets.token_hex(8)}{self.sanitize_extension(original_filename)}"

    def path_for(self, storage_name: str) -> Path:
        return self.storage_root / storage_name

    def url_for(self, storage_name: str) -> str:
        return f"{self.url_prefix}/{storage_name}"

    def is_managed_url(self, value: str) -> bool:
        """
        True for '<url_prefix>/<generated-name>' when that file was actually
        stored here, and nothing else.

        Why the existence check: a well-formed name is easy to invent, so the
        pattern alone does not prove the ingestor produced the file.
        """
        head = self.url_prefix + "/"
        if not value.startswith(head):
            return False
        name = value[len(head):]
        if not STORAGE_NAME_PATTERN.match(name):
            return False
        return self.path_for(name).is_file()

    async def open_new(self, storage_name: str):
        """
        Create `storage_name` exclusively and return an async binary handle.

        Raises:
            PersistenceError: the file could not be created.
        """
        path = self.path_for(storage_name)
        try:
            return await aiofiles.open(path, "xb")
        except OSError as e:
            logger.error("Failed to create upload file %s: %s", path, str(e))
            raise PersistenceError(
                message="Failed to save uploaded image. Please try again.",
                context={"stage": "upload", "path": str(path), "os_error": str(e)},
            )

    async def cleanup_file(self, file_path: Path) -> None:
        """
        Remove a file from storage. Missing files are ignored; other errors
        are logged so the caller's original failure is the one reported.
        """
        try:
            if file_path.exists():
                os.remove(file_path)
                logger.info("Cleaned up file: %s", file_path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", file_path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))
