from __future__ import annotations

from typing import Any, Iterable


class AppError(Exception):
    """Base error for expected failures."""

    def __init__(self, message: str, *, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    def payload(self) -> dict[str, Any]:
        """Extra fields merged into the failure envelope."""
        return {}


class AuthError(AppError):
    """Identity unknown or unverifiable. Always rendered as a generic denial."""

    def __init__(self, message: str = "access denied"):
        super().__init__(message, http_status=401)


class InvalidCredentialError(AuthError):
    """Bad signature, expired token, wrong token type, or missing/deactivated account."""


class ForbiddenError(AppError):
    def __init__(self, message: str = "forbidden", *, required: Iterable[str] = ()):
        super().__init__(message, http_status=403)
        self.required = list(required)

    def payload(self) -> dict[str, Any]:
        return {"required": self.required} if self.required else {}


class NotFoundError(AppError):
    def __init__(self, message: str = "not found"):
        super().__init__(message, http_status=404)


class ConflictError(AppError):
    def __init__(self, message: str = "conflict"):
        super().__init__(message, http_status=409)


class ValidationError(AppError):
    def __init__(self, message: str = "validation error", *, errors: list[dict[str, str]] | None = None):
        super().__init__(message, http_status=400)
        self.errors = errors or []

    def payload(self) -> dict[str, Any]:
        return {"errors": self.errors}
