class AuthCoreError(Exception):
    """Base class for errors raised by the rate limiter and OTP manager."""

    status_code = 400
    message = "Authentication error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(AuthCoreError):
    """Malformed identifier, code or purpose. Never touches stored state."""

    status_code = 400
    message = "Invalid request"


class RateLimitedError(AuthCoreError):
    status_code = 429
    message = "Too many requests. Please try again later."

    def __init__(self, retry_after_seconds: int, message: str = None):
        super().__init__(message)
        self.retry_after_seconds = int(retry_after_seconds)

    def to_dict(self) -> dict:
        return {"error": self.message, "retry_after_seconds": self.retry_after_seconds}


TooManyRequestsError = RateLimitedError


class InvalidOrExpiredError(AuthCoreError):
    """
    Wrong, unknown, already used or expired code.

    These cases share one error (and one message) so a caller cannot tell
    them apart.
    """

    status_code = 401
    message = "Invalid or expired code"


class TooManyAttemptsError(AuthCoreError):
    status_code = 429
    message = "Too many attempts. Please request a new code."
