"""Error types for the completion transport.

Custom exceptions for streaming completion requests.
"""


class CompletionError(Exception):
    """Base exception for completion transport errors."""

    pass


class CompletionTimeoutError(CompletionError):
    """Raised when the completion server does not answer in time."""

    pass


class CompletionAPIError(CompletionError):
    """Raised when the completion server returns an error status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize API error.

        Args:
            message: Error message.
            status_code: HTTP status code if available.
        """
        super().__init__(message)
        self.status_code = status_code


class CompletionConnectivityError(CompletionError):
    """Raised when the completion server cannot be reached."""

    pass


class CompletionProtocolError(CompletionError):
    """Raised when a streamed chunk cannot be decoded."""

    pass


__all__ = [
    "CompletionAPIError",
    "CompletionConnectivityError",
    "CompletionError",
    "CompletionProtocolError",
    "CompletionTimeoutError",
]
