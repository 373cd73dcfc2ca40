from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from chapterpay.core.database import get_db
from chapterpay.core.settings import settings
from chapterpay.models.user import User


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _decide_role(
    *,
    email_is_admin: bool,
    claim_is_admin: bool,
    db_role: str | None,
) -> tuple[str, str]:
    dbr = str(db_role or "").strip().lower()
    if dbr == "admin":
        return ("admin", "db_user")
    if email_is_admin:
        return ("admin", "admin_emails")
    if claim_is_admin:
        return ("admin", "jwt_claim")
    if dbr:
        return (dbr, "db_user")
    return ("reader", "default")


def _require_jwt_secret() -> str:
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is not configured")
    return settings.jwt_secret


def _decode_token(token: str) -> dict[str, Any]:
    import jwt

    secret = _require_jwt_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")


def _get_bearer_token(request: Request) -> str | None:
    auth = (request.headers.get("authorization") or "").strip()
    if not auth:
        return None
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
    else:
        token = auth
    return token or None


def _resolve_user(token: str, db: Session) -> CurrentUser:
    claims = _decode_token(token)
    user_id = str(claims.get("id") or claims.get("sub") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    email = str(user.email or claims.get("email") or "").strip()
    claim_is_admin = str(claims.get("role") or "").strip().lower() == "admin"
    role, _reason = _decide_role(
        email_is_admin=_is_admin_email(email),
        claim_is_admin=claim_is_admin,
        db_role=user.role,
    )
    return CurrentUser(id=user.id, email=email, role=role)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser:
    token = _get_bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Access denied. No token provided.")
    return _resolve_user(token, db)


def get_optional_user(request: Request, db: Session = Depends(get_db)) -> CurrentUser | None:
    token = _get_bearer_token(request)
    if token is None:
        return None
    try:
        return _resolve_user(token, db)
    except HTTPException:
        # Anonymous reads fall back to the public view of a chapter.
        return None


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if (user.role or "").lower() != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def issue_token(user_id: str, *, email: str | None = None, role: str | None = None) -> str:
    import jwt

    payload: dict[str, Any] = {"id": user_id}
    if email:
        payload["email"] = email
    if role:
        payload["role"] = role
    return jwt.encode(payload, _require_jwt_secret(), algorithm=settings.jwt_algorithm)
