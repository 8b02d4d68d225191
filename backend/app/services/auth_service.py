"""
services/auth_service.py — Account lifecycle: register, login, logout,
refresh, change password.

Responsibilities:
  - User registration (uniqueness, password hashing, optional profile images)
  - Credential validation and token issuance via TokenService
  - Refresh-token rotation and revocation via TokenService
  - Password change

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or flask.current_app; configuration
    (bcrypt rounds, token settings, media storage) is passed in
  - Commits are the route's responsibility — only flush here

Known limitation: change_current_password does not revoke the stored refresh
token, so a session opened before the change stays valid until it is rotated
away or logged out.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.datastructures import FileStorage

from backend.app.errors import AppError, ErrorCode
from backend.app.models.user import User
from backend.app.services.media_storage import LocalMediaStorage
from backend.app.services.password_service import hash_password, verify_password
from backend.app.services.token_service import TokenService
from backend.app.services.user_service import (
    build_public_user,
    duplicate_identity_error,
    email_taken,
    get_user_or_404,
)


logger = logging.getLogger(__name__)


def _invalid_credentials() -> AppError:
    return AppError(
        ErrorCode.INVALID_CREDENTIALS,
        "The username, email or password is incorrect.",
        401,
    )


def _username_taken(username: str, session: Session) -> bool:
    return session.execute(
        select(User.id).where(User.username == username)
    ).first() is not None


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        email: str,
        full_name: str,
        password: str,
        session: Session,
        rounds: int = 12,
        storage: LocalMediaStorage | None = None,
        avatar: FileStorage | None = None,
        cover_image: FileStorage | None = None,
) -> dict:
    """
    Creates a new user account. Does not log the user in.

    `username` and `email` are expected already normalised (lower-cased) by
    the request schema. Images are optional; when given, `storage` must be too.

    Raises:
      AppError(DUPLICATE_USERNAME, 409) — username already taken
      AppError(DUPLICATE_EMAIL, 409)    — email already registered
      AppError(INVALID_FILE, 400)       — image has an unsupported type
    Images already written are deleted again if registration fails.

    Returns: public user dict (no password hash, no refresh token)
    """
    # Cross-entity uniqueness checks need the DB, so they live here.
    if _username_taken(username, session):
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )
    if email_taken(email, session):
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    stored_urls: list[str] = []
    try:
        avatar_url = cover_image_url = None
        if storage is not None:
            if avatar is not None and avatar.filename:
                avatar_url = storage.save(avatar, field="avatar")
                stored_urls.append(avatar_url)
            if cover_image is not None and cover_image.filename:
                cover_image_url = storage.save(cover_image, field="cover_image")
                stored_urls.append(cover_image_url)

        user = User(
            username=username,
            email=email,
            full_name=full_name,
            avatar=avatar_url,
            cover_image=cover_image_url,
            password_hash=hash_password(password, rounds=rounds),
        )
        session.add(user)

        try:
            session.flush()  # populate user.id; surfaces unique-constraint races
        except IntegrityError as exc:
            session.rollback()
            raise duplicate_identity_error(exc) from exc
    except Exception:
        # No user row exists, so any image already written is orphaned.
        for url in stored_urls:
            storage.delete(url)
        raise

    logger.info("Registered user_id=%s", user.id)
    return build_public_user(user)


def login_user(
        password: str,
        session: Session,
        token_service: TokenService,
        username: str | None = None,
        email: str | None = None,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.
    Any refresh token issued earlier for this user stops working.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — user not found or password wrong.
      Same error for both to avoid account enumeration.

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    lookups = []
    if username:
        lookups.append(User.username == username)
    if email:
        lookups.append(User.email == email)
    if not lookups:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "Username or email is required to log in.",
            400,
        )

    user = session.execute(
        select(User).where(or_(*lookups))
    ).scalars().first()

    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for username=%r email=%r", username, email)
        raise _invalid_credentials()

    tokens = token_service.issue(user)

    return {
        "user": build_public_user(user),
        **tokens.to_dict(),
    }


def logout_user(user_id: int, token_service: TokenService) -> None:
    """
    Clears the user's stored refresh token. The caller need not present it.
    Access tokens already issued stay valid until they expire.
    """
    token_service.revoke(user_id)


def refresh_session(refresh_token: str | None, token_service: TokenService) -> dict:
    """
    Rotates the refresh token and returns the new pair.

    Raises TokenError (401): TOKEN_MISSING, REFRESH_TOKEN_INVALID,
    REFRESH_TOKEN_REUSED.

    Returns: {"access_token": "...", "refresh_token": "..."}
    """
    return token_service.rotate(refresh_token).to_dict()


def change_current_password(
        user_id: int,
        old_password: str,
        new_password: str,
        session: Session,
        rounds: int = 12,
) -> None:
    """
    Replaces the password hash after verifying the old password.
    Strength of new_password is enforced by the request schema.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — old password wrong
      AppError(USER_NOT_FOUND, 404)
    """
    user = get_user_or_404(user_id, session)

    if not verify_password(old_password, user.password_hash):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The current password is incorrect.",
            401,
            field="old_password",
        )

    user.password_hash = hash_password(new_password, rounds=rounds)
    session.flush()
    logger.info("Password changed for user_id=%s", user_id)
