"""
routes/users.py — Account and profile route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries. AppError propagates to the global
error handler in app/__init__.py — routes never catch it.

Endpoints (url_prefix=/api/v1/users):
  POST   /register            → 201
  POST   /login               → 200  sets accessToken + refreshToken cookies
  POST   /logout              → 200  clears both cookies (auth)
  POST   /refresh-token       → 200  rotates the pair, resets cookies
  POST   /change-password     → 200  (auth)
  GET    /current-user        → 200  (auth)
  PATCH  /update-details      → 200  (auth)
  PATCH  /avatar              → 200  multipart "avatar" (auth)
  PATCH  /cover-image         → 200  multipart "cover_image" or "coverImage" (auth)
  GET    /channel/<username>  → 200  (auth)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_token_service,
    require_auth,
)
from backend.app.schemas.auth_schema import (
    ChangePasswordSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
)
from backend.app.schemas.user_schema import UpdateDetailsSchema
from backend.app.services import auth_service, subscription_service, user_service
from backend.app.services.media_storage import LocalMediaStorage

users_bp = Blueprint("users", __name__)


# ── Helpers ────────────────────────────────────────────────────────────────

def _request_data() -> dict:
    """JSON body, or form fields for multipart requests."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": current_app.config.get("COOKIE_SECURE", True),
        "samesite": current_app.config.get("COOKIE_SAMESITE"),
    }


def _set_auth_cookies(response, access_token: str, refresh_token: str):
    options = _cookie_options()
    response.set_cookie(
        ACCESS_COOKIE,
        access_token,
        max_age=current_app.config["ACCESS_TOKEN_EXPIRY"],
        **options,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        max_age=current_app.config["REFRESH_TOKEN_EXPIRY"],
        **options,
    )
    return response


def _clear_auth_cookies(response):
    options = _cookie_options()
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)
    return response


def _media_storage() -> LocalMediaStorage:
    return LocalMediaStorage.from_mapping(current_app.config)


def _cover_image_file():
    """Multipart field "cover_image", or "coverImage" from older clients."""
    return request.files.get("cover_image") or request.files.get("coverImage")


# ── Account lifecycle ──────────────────────────────────────────────────────

@users_bp.route("/register", methods=["POST"])
def register():
    """POST /users/register — Create account. (No auth required, no tokens issued.)"""
    data = RegisterSchema().load(_request_data())
    result = auth_service.register_user(
        username=data["username"],
        email=data["email"],
        full_name=data["full_name"],
        password=data["password"],
        session=db.session,
        rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12),
        storage=_media_storage(),
        avatar=request.files.get("avatar"),
        cover_image=_cover_image_file(),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@users_bp.route("/login", methods=["POST"])
def login():
    """POST /users/login — Authenticate; return tokens in body and cookies."""
    data = LoginSchema().load(request.get_json(force=True, silent=True) or {})
    result = auth_service.login_user(
        password=data["password"],
        session=db.session,
        token_service=get_token_service(),
        username=data["username"],
        email=data["email"],
    )
    db.session.commit()
    response = jsonify({"data": result, "warnings": []})
    _set_auth_cookies(response, result["access_token"], result["refresh_token"])
    return response, 200


@users_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /users/logout — Revoke the stored refresh token; clear cookies. (Auth required.)"""
    auth_service.logout_user(
        user_id=g.user_id,
        token_service=get_token_service(),
    )
    db.session.commit()
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    _clear_auth_cookies(response)
    return response, 200


@users_bp.route("/refresh-token", methods=["POST"])
def refresh_token():
    """POST /users/refresh-token — Exchange the refresh token (cookie or body) for a new pair."""
    data = RefreshTokenSchema().load(request.get_json(silent=True) or {})
    result = auth_service.refresh_session(
        refresh_token=request.cookies.get(REFRESH_COOKIE) or data["refresh_token"],
        token_service=get_token_service(),
    )
    db.session.commit()
    response = jsonify({"data": result, "warnings": []})
    _set_auth_cookies(response, result["access_token"], result["refresh_token"])
    return response, 200


@users_bp.route("/change-password", methods=["POST"])
@require_auth
def change_password():
    """POST /users/change-password — Verify old password; store the new one. (Auth required.)"""
    data = ChangePasswordSchema().load(request.get_json(force=True, silent=True) or {})
    auth_service.change_current_password(
        user_id=g.user_id,
        old_password=data["old_password"],
        new_password=data["new_password"],
        session=db.session,
        rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12),
    )
    db.session.commit()
    return jsonify({"data": {"message": "Password updated successfully."}, "warnings": []}), 200


# ── Profile ────────────────────────────────────────────────────────────────

@users_bp.route("/current-user", methods=["GET"])
@require_auth
def current_user():
    """GET /users/current-user — Profile resolved by the auth middleware."""
    return jsonify({"data": g.current_user, "warnings": []}), 200


@users_bp.route("/update-details", methods=["PATCH"])
@require_auth
def update_details():
    """PATCH /users/update-details — Change full_name and/or email."""
    data = UpdateDetailsSchema().load(request.get_json(force=True, silent=True) or {})
    result = user_service.update_account_details(
        user_id=g.user_id,
        session=db.session,
        full_name=data.get("full_name"),
        email=data.get("email"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/avatar", methods=["PATCH"])
@require_auth
def update_avatar():
    """PATCH /users/avatar — Replace the avatar (multipart field "avatar")."""
    result = user_service.update_avatar(
        user_id=g.user_id,
        file=request.files.get("avatar"),
        storage=_media_storage(),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/cover-image", methods=["PATCH"])
@require_auth
def update_cover_image():
    """PATCH /users/cover-image — Replace the cover image (multipart field "cover_image" or "coverImage")."""
    result = user_service.update_cover_image(
        user_id=g.user_id,
        file=_cover_image_file(),
        storage=_media_storage(),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/channel/<string:username>", methods=["GET"])
@require_auth
def channel_profile(username: str):
    """GET /users/channel/:username — Channel profile with subscriber counts."""
    result = subscription_service.get_channel_profile(
        username=username,
        viewer_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
