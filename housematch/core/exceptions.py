from typing import Any


class MatchingError(Exception):
    """Base error for the matching engine.

    Carries a stable error code and the HTTP status the API layer answers
    with, so services can raise without knowing about the transport.
    """

    code: str = "MATCHING_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or []
        if field is not None and not details:
            self.details = [{"field": field, "message": message}]


class NotAuthenticatedError(MatchingError):
    code = "AUTH_REQUIRED"
    status_code = 401


class InvalidArgumentError(MatchingError):
    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidStateError(MatchingError):
    code = "INVALID_STATE"
    status_code = 409


class NotFoundError(MatchingError):
    code = "NOT_FOUND"
    status_code = 404


class DailyLimitExceededError(MatchingError):
    code = "DAILY_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, limit: int):
        super().__init__(f"Daily match limit of {limit} reached")
        self.limit = limit


class DownstreamUnavailableError(MatchingError):
    code = "DOWNSTREAM_UNAVAILABLE"
    status_code = 503

    def __init__(self, service: str, reason: str = ""):
        message = f"{service} is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.service = service
