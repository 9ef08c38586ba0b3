"""Explicit configuration for the client-side resolver and uploader."""

from dataclasses import dataclass
from typing import Optional

from community_low.config import Settings, settings as default_settings


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration, passed at construction time."""

    base_url: str = ""
    use_community: bool = True
    flush_interval_seconds: float = 1.0
    max_batch: int = 100
    timeout_seconds: float = 10.0

    @property
    def reporting_enabled(self) -> bool:
        return self.use_community and bool(self.base_url)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ClientConfig":
        """Build a config from process settings."""
        settings = settings or default_settings
        return cls(
            base_url=settings.community_base_url.rstrip("/"),
            use_community=settings.use_community,
            flush_interval_seconds=settings.report_flush_interval_ms / 1000.0,
            max_batch=settings.report_max_batch,
            timeout_seconds=settings.client_timeout_seconds,
        )
