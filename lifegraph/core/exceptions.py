"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class RateLimitError(AppError):
    """Raised when a user exhausted their budget of LLM calls.

    Retryable: ``reset_in_ms`` tells the caller how long until the window
    resets.
    """

    def __init__(self, reset_in_ms: int, message: str = None):
        retry_after = max(1, -(-reset_in_ms // 1000))
        super().__init__(
            message or f"Too many AI requests. Please try again in {retry_after} seconds."
        )
        self.reset_in_ms = reset_in_ms
        self.retry_after_seconds = retry_after
