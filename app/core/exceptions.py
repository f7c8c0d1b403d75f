"""Application error taxonomy.

Every error the quote path can raise carries the HTTP status it maps to;
handlers in app.main render them as ``{"detail": ...}``.
"""


class AppError(Exception):
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(AppError):
    """Bad request shape or range. Raised before any aggregation starts."""

    status_code = 400
    default_detail = "Invalid request"


class UnauthorizedError(AppError):
    status_code = 401
    default_detail = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    default_detail = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "Not found"


class RateLimitError(AppError):
    status_code = 429
    default_detail = "Rate limit exceeded"

    def __init__(self, detail: str | None = None, retry_after: float = 0.0, window: str = ""):
        super().__init__(detail)
        self.retry_after = retry_after
        self.window = window


class StorageError(AppError):
    """Cache backend or security/key store unavailable."""

    status_code = 503
    default_detail = "Storage backend unavailable"


class InternalError(AppError):
    status_code = 500
    default_detail = "Internal server error"
