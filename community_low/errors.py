"""Exception types shared by the server and client sides."""


class IngestValidationError(RuntimeError):
    """Raised for a malformed ingestion item (rejected per item, never per batch)."""
    pass


class TransportFailure(RuntimeError):
    """Raised when the store or cache cannot be reached."""
    pass


class UpstreamUnavailable(RuntimeError):
    """Raised on the client when the community service cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnsupportedDatabaseError(RuntimeError):
    """Raised when the configured dialect has no atomic conditional upsert."""
    pass
