"""
Travel Log Backend — Shared-Secret Authenticator
==================================================

What:  Accepts a write only if the submitted credential equals the
       configured API key exactly.
How:   Constant-time comparison of the UTF-8 bytes. No hashing, no per-user
       keys: one global secret.
"""

import hmac
import logging
from typing import Optional

from travel_log.exceptions import AuthError

logger = logging.getLogger(__name__)


class Authenticator:
    """Checks credentials against a single shared secret."""

    def __init__(self, api_key: str):
        self._api_key = api_key.encode("utf-8")

    def authenticate(self, credential: Optional[str]) -> None:
        """
        Raises:
            AuthError: credential missing, secret unconfigured, or mismatch.
        """
        if not self._api_key:
            logger.error("Write rejected: no API key is configured on the server")
            raise AuthError()
        if credential is None:
            raise AuthError()
        try:
            submitted = credential.encode("utf-8")
        except UnicodeEncodeError:
            # Lone surrogates decode from JSON but can never equal the key
            raise AuthError()
        if not hmac.compare_digest(submitted, self._api_key):
            raise AuthError()
