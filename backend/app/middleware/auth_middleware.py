"""
middleware/auth_middleware.py — Access-token authentication decorator.

The @require_auth decorator:
  1. Reads the access token from the `accessToken` cookie, or failing that
     from the Authorization header (expected: "Bearer <token>")
  2. Verifies signature and expiry through TokenService
  3. Loads the user the token names, selecting public columns only
  4. Attaches g.user_id (int) and g.current_user (public dict)
  5. Raises the appropriate 401 AppError if any step fails

Per request the outcome is either authenticated (the view runs) or rejected
(the view never runs). There is no retry and no silent refresh: an expired
access token must be exchanged by the client at POST /users/refresh-token.

Error codes:
  TOKEN_MISSING  (401) — no cookie and no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, unknown user
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.services import user_service
from backend.app.services.token_service import ACCESS, TokenConfig, TokenService, subject_id


ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def get_token_service() -> TokenService:
    """TokenService bound to the current app's config and request session."""
    return TokenService(TokenConfig.from_mapping(current_app.config), db.session)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces access-token authentication.

    Usage:
        @users_bp.route("/current-user")
        @require_auth
        def current_user():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _extract_access_token() -> str:
    """Cookie first, then "Authorization: Bearer <token>"."""
    cookie_token = request.cookies.get(ACCESS_COOKIE)
    if cookie_token:
        return cookie_token

    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide the accessToken cookie or a Bearer token.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return parts[1]


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets g.user_id and
    g.current_user. Nothing is attached to g unless every step succeeds.

    Separated from the decorator wrapper so tests can call it directly inside
    a test_request_context.
    """
    raw_token = _extract_access_token()

    claims = get_token_service().verify(raw_token, ACCESS)
    user_id = subject_id(claims)

    profile = user_service.load_public_user(user_id, db.session)
    if profile is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token refers to a user that no longer exists.",
            401,
        )

    g.user_id = user_id
    g.current_user = profile
