"""Acting-user resolution from trusted identity headers."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from donation_reports.core.config import get_settings
from donation_reports.db.dependencies import get_db_session
from donation_reports.models.entities import User, utcnow


def _require_identity_headers(
    x_user_id: str | None,
    x_user_email: str | None,
    x_user_name: str | None,
) -> tuple[str, str, str]:
    if not x_user_id or not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers. Expected X-User-Id and X-User-Email or enable development principal fallback.",
        )

    display_name = x_user_name or x_user_email
    return x_user_id.strip(), x_user_email.strip().lower(), display_name.strip()


def _resolve_identity(
    x_user_id: str | None,
    x_user_email: str | None,
    x_user_name: str | None,
) -> tuple[str, str, str]:
    settings = get_settings()
    if x_user_id and x_user_email:
        return _require_identity_headers(x_user_id, x_user_email, x_user_name)

    if settings.auth_allow_dev_principal:
        return (
            settings.auth_dev_external_id.strip(),
            settings.auth_dev_email.strip().lower(),
            settings.auth_dev_display_name.strip(),
        )

    return _require_identity_headers(x_user_id, x_user_email, x_user_name)


def upsert_user(db: Session, *, external_id: str, email: str, display_name: str) -> User:
    """Find the user by external id, creating or refreshing it. Flushes, does not commit."""

    user = db.scalar(select(User).where(User.external_id == external_id))
    now = utcnow()

    if user is None:
        user = User(
            external_id=external_id,
            email=email,
            display_name=display_name or email,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()
        return user

    if user.email != email or user.display_name != display_name:
        user.email = email
        user.display_name = display_name or email
        user.updated_at = now
        db.flush()
    return user


def get_current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    x_user_name: str | None = Header(default=None, alias="X-User-Name"),
    db: Session = Depends(get_db_session),
) -> User:
    """Resolve the acting user.

    Headers are trusted as set by the fronting proxy; no authorization rules
    are applied here.
    """

    external_id, email, display_name = _resolve_identity(x_user_id, x_user_email, x_user_name)
    user = upsert_user(db, external_id=external_id, email=email, display_name=display_name)
    db.commit()
    return user
