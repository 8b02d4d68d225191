"""
services/user_service.py — Profile reads and updates for the current user.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
  - Secret columns (password_hash, refresh_token) never leave this layer:
    every response is built by build_public_user().
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.datastructures import FileStorage

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User
from backend.app.services.media_storage import LocalMediaStorage


# Columns safe to expose. Used both for serialisation and for the
# projection the auth middleware loads.
PUBLIC_COLUMNS = (
    User.id,
    User.username,
    User.email,
    User.full_name,
    User.avatar,
    User.cover_image,
    User.created_at,
    User.updated_at,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def build_public_user(user) -> dict:
    """Serialises a User (or a PUBLIC_COLUMNS row) to a plain dict. No secrets."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "avatar": user.avatar,
        "cover_image": user.cover_image,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }


def load_public_user(user_id: int, session: Session) -> dict | None:
    """
    Loads only the public columns of a user. Returns None if the id is unknown.
    password_hash and refresh_token are never selected.
    """
    row = session.execute(
        select(*PUBLIC_COLUMNS).where(User.id == user_id)
    ).one_or_none()
    if row is None:
        return None
    return build_public_user(row)


def get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return user


def email_taken(email: str, session: Session, exclude_user_id: int | None = None) -> bool:
    stmt = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return session.execute(stmt).first() is not None


# Constraint markers as reported by PostgreSQL and SQLite.
_EMAIL_CONSTRAINT_MARKERS = ("uq_users_email", "users.email", "(email)")


def duplicate_identity_error(exc: IntegrityError) -> AppError:
    """Maps a unique-constraint race on users to DUPLICATE_EMAIL or DUPLICATE_USERNAME."""
    detail = str(getattr(exc, "orig", exc)).lower()
    if any(marker in detail for marker in _EMAIL_CONSTRAINT_MARKERS):
        return AppError(
            ErrorCode.DUPLICATE_EMAIL,
            "A user with this email address already exists.",
            409,
            field="email",
        )
    return AppError(
        ErrorCode.DUPLICATE_USERNAME,
        "A user with this username already exists.",
        409,
        field="username",
    )


# ── Public service functions ───────────────────────────────────────────────

def update_account_details(
        user_id: int,
        session: Session,
        full_name: str | None = None,
        email: str | None = None,
) -> dict:
    """
    Updates full_name and/or email. At least one must be supplied (the schema
    enforces this; checked again here for direct callers).

    Raises:
      AppError(MISSING_FIELD, 400)   — neither field supplied
      AppError(DUPLICATE_EMAIL, 409) — email belongs to another user
    """
    if full_name is None and email is None:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "Provide full_name or email to update the details.",
            400,
        )

    user = get_user_or_404(user_id, session)

    if email is not None and email != user.email:
        if email_taken(email, session, exclude_user_id=user_id):
            raise AppError(
                ErrorCode.DUPLICATE_EMAIL,
                f"The email address '{email}' is already registered.",
                409,
                field="email",
            )
        user.email = email

    if full_name is not None:
        user.full_name = full_name

    try:
        session.flush()
    except IntegrityError as exc:
        # Another account claimed the email between the check and the write.
        session.rollback()
        raise duplicate_identity_error(exc) from exc
    return build_public_user(user)


def _replace_image(
        user_id: int,
        attribute: str,
        file: FileStorage | None,
        storage: LocalMediaStorage,
        session: Session,
) -> dict:
    user = get_user_or_404(user_id, session)

    new_url = storage.save(file, field=attribute)
    old_url = getattr(user, attribute)

    setattr(user, attribute, new_url)
    session.flush()

    storage.delete(old_url)
    return build_public_user(user)


def update_avatar(
        user_id: int,
        file: FileStorage | None,
        storage: LocalMediaStorage,
        session: Session,
) -> dict:
    """Stores a new avatar and removes the previous one."""
    return _replace_image(user_id, "avatar", file, storage, session)


def update_cover_image(
        user_id: int,
        file: FileStorage | None,
        storage: LocalMediaStorage,
        session: Session,
) -> dict:
    """Stores a new cover image and removes the previous one."""
    return _replace_image(user_id, "cover_image", file, storage, session)
