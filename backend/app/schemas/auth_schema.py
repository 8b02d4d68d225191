"""
schemas/auth_schema.py — Marshmallow schemas for account endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, the password pattern.
  - services/auth_service.py: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks
    (cross-entity: require a DB lookup — not a schema concern).

Usernames and emails are trimmed and lower-cased before validation so the
service always sees the stored form.

All schemas inherit from marshmallow.Schema directly so unit tests can load
them without an app context.
"""

from __future__ import annotations

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.services.password_service import is_strong_password


# bcrypt only looks at the first 72 bytes; every allowed character is ASCII.
_PASSWORD_MAX_LENGTH = 72


# camelCase names accepted from older clients.
WIRE_ALIASES = {
    "fullName": "full_name",
    "refreshToken": "refresh_token",
}


def apply_wire_aliases(data):
    """Renames camelCase keys to their snake_case field. The snake_case key wins."""
    if not isinstance(data, dict):
        return data
    data = dict(data)
    for alias, name in WIRE_ALIASES.items():
        if alias in data:
            value = data.pop(alias)
            data.setdefault(name, value)
    return data


def _normalise_identity(data, keys=("username", "email")):
    data = apply_wire_aliases(data)
    if not isinstance(data, dict):
        return data
    for key in keys:
        if isinstance(data.get(key), str):
            data[key] = data[key].strip().lower()
    if isinstance(data.get("full_name"), str):
        data["full_name"] = data["full_name"].strip()
    return data


def _check_strength(value: str) -> None:
    if not is_strong_password(value):
        raise ValidationError(ErrorCode.WEAK_PASSWORD)


class RegisterSchema(Schema):
    """
    POST /users/register (JSON or multipart form fields)

    Field rules:
      username  : 3–50 chars, letters, digits and underscore
      email     : valid email format
      full_name : 1–100 chars
      password  : the strength pattern in password_service
    Image files are read from request.files by the route, not here.
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    full_name = fields.Str(
        required=True,
        validate=validate.Length(
            min=1,
            max=100,
            error="Full name must be between 1 and 100 characters.",
        ),
    )

    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(max=_PASSWORD_MAX_LENGTH),
    )

    @pre_load
    def normalise(self, data, **kwargs):
        return _normalise_identity(data)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        _check_strength(value)


class LoginSchema(Schema):
    """
    POST /users/login

    Accepts username or email (either one) + password. Credential correctness
    is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    username = fields.Str(load_default=None)
    email = fields.Str(load_default=None)
    password = fields.Str(required=True, load_only=True)

    @pre_load
    def normalise(self, data, **kwargs):
        return _normalise_identity(data)

    @validates_schema
    def require_identifier(self, data, **kwargs) -> None:
        if not (data.get("username") or data.get("email")):
            raise ValidationError(
                "Missing data for required field: username or email.",
                field_name="username",
            )


class RefreshTokenSchema(Schema):
    """
    POST /users/refresh-token

    The refresh token normally travels in the refreshToken cookie; a body
    value is accepted for clients that cannot send cookies.
    """

    refresh_token = fields.Str(load_default=None)

    @pre_load
    def accept_aliases(self, data, **kwargs):
        return apply_wire_aliases(data)


class ChangePasswordSchema(Schema):
    """POST /users/change-password"""

    old_password = fields.Str(required=True, load_only=True)
    new_password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(max=_PASSWORD_MAX_LENGTH),
    )

    @validates("new_password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        _check_strength(value)
