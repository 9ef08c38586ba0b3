"""Reporter anonymization.

Reporters are only ever counted, never identified: the raw network identity
is folded with a server-side salt into a fixed-length SHA-256 hex digest.
"""

import hashlib
import logging
from typing import Optional

from community_low.config import settings

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64


class ReporterAnonymizer:
    """Derives stable, non-reversible reporter tokens."""

    def __init__(self, salt: Optional[str] = None, fallback_identity: Optional[str] = None):
        self.salt = salt if salt is not None else settings.reporter_salt
        self.fallback_identity = fallback_identity or settings.anonymous_identity

    def anonymize(self, raw_identity: Optional[str]) -> str:
        """
        Derive the reporter token for a raw identity.

        Args:
            raw_identity: Client network identity (usually an IP address)

        Returns:
            64-character lowercase hex digest
        """
        identity = (raw_identity or "").strip()
        if not identity:
            logger.debug("No usable reporter identity, using fallback")
            identity = self.fallback_identity
        return hashlib.sha256((identity + self.salt).encode("utf-8")).hexdigest()


# Global anonymizer instance
reporter_anonymizer = ReporterAnonymizer()
