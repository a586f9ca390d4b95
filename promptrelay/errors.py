"""
Error taxonomy for promptrelay.

Every failure that crosses the orchestrator boundary is one of these.
The HTTP layer maps them to status codes via `status_code` / `code`;
nothing else in the codebase needs to know about HTTP.

    ValidationError       400  bad input, never retried
    AuthenticationRequired 401 no caller identity on a protected route
    NotFoundError         404  session/resource absent or not owned
    RequestTimeoutError   408  caller deadline exceeded / cancelled
    RateLimitExceeded     429  fixed-window counter exhausted
    UpstreamError         500  LLM backend failed after transport retries
    InternalError         500  anything unanticipated
"""

from __future__ import annotations


class PromptRelayError(Exception):
    """Base class. Carries an HTTP-ish status and a stable error code."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str = "", details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self, include_details: bool = False) -> dict:
        body = {"error": self.code, "message": self.message}
        if include_details and self.details:
            body["details"] = self.details
        return body


class ValidationError(PromptRelayError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidStrategyError(ValidationError):
    code = "INVALID_STRATEGY"

    def __init__(self, strategy: str, valid: list[str]):
        super().__init__(
            f"Invalid strategy '{strategy}'. Valid options: {', '.join(valid)}"
        )
        self.strategy = strategy


class AuthenticationRequired(PromptRelayError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"


class NotFoundError(PromptRelayError):
    status_code = 404
    code = "RESOURCE_NOT_FOUND"


class RequestTimeoutError(PromptRelayError, TimeoutError):
    status_code = 408
    code = "REQUEST_TIMEOUT"


class RateLimitExceeded(PromptRelayError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class UpstreamError(PromptRelayError):
    """An LLM call returned an error or no usable content."""

    status_code = 500
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, model: str | None = None, status: int | None = None):
        super().__init__(message, details=f"model={model} status={status}")
        self.model = model
        self.status = status


class InternalError(PromptRelayError):
    status_code = 500
    code = "INTERNAL_SERVER_ERROR"
