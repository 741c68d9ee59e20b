"""
Shop errors raised by services and dependencies.

Each error is an HTTPException, so FastAPI stops the request where it is
raised; main.py renders it as

    {"success": false, "error": {"code": <error.code>, "message": ..., "details": {...}}}

where the code is the class name without "Error", lower-cased
(NotFoundError -> "notfound", UpstreamServiceError -> "upstreamservice").
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class: a message for the buyer/admin UI plus optional structured details."""
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: dict | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return self.__class__.__name__.replace("Error", "").lower()


class NotFoundError(DomainError):
    """A product, variant, cart line or order that does not exist, or is not the caller's (404)."""
    def __init__(self, resource_type: str, identifier: str | int, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Rejected input: empty cart, bad upload, weak password, unsigned webhook (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class PermissionDeniedError(DomainError):
    """Signed in, but not an admin (403)."""
    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UnauthorizedError(DomainError):
    """Missing/invalid access token, bad credentials or a forged webhook (401)."""
    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class ConflictError(DomainError):
    """Duplicate e-mail, or an order already in the requested review status (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class RateLimitError(DomainError):
    """Too many credential attempts from one client (429); carries Retry-After."""
    def __init__(
        self,
        message: str = "Rate limit exceeded",
        details: dict | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(
            message, status_code=status.HTTP_429_TOO_MANY_REQUESTS, details=details, headers=headers
        )


class UpstreamServiceError(DomainError):
    """The exchange-rate provider or Binance Pay failed or is not configured (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details)
