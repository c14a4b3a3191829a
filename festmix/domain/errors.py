class RateLimited(Exception):
    """Operation was rate limited by the platform. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class TemporaryFailure(Exception):
    """Transient platform or network failure. Retrying may succeed."""


class PermanentFailure(Exception):
    """Non-retriable failure due to invalid input or authorization issues."""


class CredentialExpired(PermanentFailure):
    """The end-user credential was rejected by the platform (HTTP 401)."""


class ServiceCredentialMissing(PermanentFailure):
    """A platform call needs a service credential that was never injected."""


class CoverTooLarge(PermanentFailure):
    """Cover image exceeds the platform's upload limit."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(f"Cover image is {size_bytes} bytes, limit is {limit_bytes}")
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class NotFound(Exception):
    """Requested resource was not found."""


class NoTracksFound(Exception):
    """A resolution produced no tracks, so there is nothing to build a playlist from."""
