"""
Error taxonomy shared by the score broker and the score checker.
Every error carries the correlation_id of the request it belongs to (if known).
Server-side errors (5xx) never expose their message to the caller.
"""


class BrokerError(Exception):
    """Base class; error_code and status_code map directly onto the HTTP response."""

    error_code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "", *, correlation_id: str | None = None, error_code: str | None = None):
        super().__init__(message or self.error_code)
        self.correlation_id = correlation_id
        if error_code is not None:
            self.error_code = error_code

    def to_body(self) -> dict:
        body = {"error": self.error_code}
        if self.correlation_id:
            body["correlation_id"] = self.correlation_id
        return body


class ValidationError(BrokerError):
    """Malformed or missing caller input. Never retried; the caller must fix the request."""

    error_code = "missing_fields"
    status_code = 400

    def __init__(
        self,
        message: str = "",
        *,
        correlation_id: str | None = None,
        error_code: str | None = None,
        missing_fields: list[str] | None = None,
    ):
        super().__init__(message, correlation_id=correlation_id, error_code=error_code)
        self.missing_fields = list(missing_fields or [])

    def to_body(self) -> dict:
        body = super().to_body()
        if self.missing_fields:
            body["missing_fields"] = self.missing_fields
        return body


class KeyLoadError(BrokerError):
    """Primary key absent or malformed (wrong key type or curve). Fatal until configuration is fixed."""


class SigningError(BrokerError):
    """Key/algorithm mismatch while signing."""


class InvalidTokenError(BrokerError):
    """Bad signature, unknown key, wrong issuer/audience/scope or missing claim."""

    error_code = "invalid_token"
    status_code = 401


class TokenExpiredError(BrokerError):
    """Token presented after expires_at. Caller should request a fresh token."""

    error_code = "token_expired"
    status_code = 401


class TokenReplayError(BrokerError):
    """Nonce already consumed. Either a client bug or an attack."""

    error_code = "token_replay"
    status_code = 401


class RateLimitExceeded(BrokerError):
    """Only raised when rate limiting runs in enforce mode; log_only mode just records the event."""

    error_code = "rate_limited"
    status_code = 429

    def __init__(self, message: str = "", *, correlation_id: str | None = None, retry_after: int = 1):
        super().__init__(message, correlation_id=correlation_id)
        self.retry_after = retry_after

    def to_body(self) -> dict:
        body = super().to_body()
        body["retry_after"] = self.retry_after
        return body


class ScoringError(BrokerError):
    """The external scoring collaborator failed."""
