from __future__ import annotations

from typing import Any


class ChapterPayError(Exception):
    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, *, code: str | None = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "code": self.code, "message": self.message}
        payload.update(self.extra)
        return payload


class ValidationError(ChapterPayError):
    status_code = 400
    default_code = "validation_error"


class NotFoundError(ChapterPayError):
    status_code = 404
    default_code = "not_found"


class AuthorizationError(ChapterPayError):
    status_code = 403
    default_code = "forbidden"


# Business-rule rejections share the 400 status; callers tell them apart by code.
class ConflictError(ChapterPayError):
    status_code = 400
    default_code = "conflict"


class InternalError(ChapterPayError):
    status_code = 500
    default_code = "internal_error"
