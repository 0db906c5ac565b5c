"""
Error taxonomy for the Asana sync engine.

Poll failures are converted into an error packet at the poll boundary;
these types only propagate to callers of the client directly.
"""

from typing import Optional


class AsanaAPIError(Exception):
    """Base class for failures talking to the Asana API."""

    pass


class AuthError(AsanaAPIError):
    """No API key configured, or the API rejected it (401)."""

    def __init__(self, message: str = "No API key configured", status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class HttpError(AsanaAPIError):
    """Non-2xx response. Body is kept for diagnostics."""

    def __init__(self, status: int, body: str = ""):
        super().__init__(f"Asana API {status}: {body}")
        self.status = status
        self.body = body


class RateLimitError(HttpError):
    """429 still returned after the retry budget was spent."""

    def __init__(self, body: str = "", retry_after: Optional[float] = None):
        super().__init__(429, body)
        self.retry_after = retry_after


class PaginationExhaustedWarning(UserWarning):
    """Search pagination stopped at the page cap; results are partial."""

    pass
