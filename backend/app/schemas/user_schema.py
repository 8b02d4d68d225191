"""
schemas/user_schema.py — Marshmallow schemas for profile endpoints.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, pre_load, validate, validates_schema

from backend.app.schemas.auth_schema import apply_wire_aliases


class UpdateDetailsSchema(Schema):
    """
    PATCH /users/update-details

    At least one of full_name / email. Email uniqueness is checked in
    user_service.py (DUPLICATE_EMAIL, 409).
    """

    full_name = fields.Str(
        validate=validate.Length(
            min=1,
            max=100,
            error="Full name must be between 1 and 100 characters.",
        ),
    )
    email = fields.Email(validate=validate.Length(max=255))

    @pre_load
    def normalise(self, data, **kwargs):
        data = apply_wire_aliases(data)
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("email"), str):
            data["email"] = data["email"].strip().lower()
        if isinstance(data.get("full_name"), str):
            data["full_name"] = data["full_name"].strip()
        return data

    @validates_schema
    def require_one_field(self, data, **kwargs) -> None:
        if "full_name" not in data and "email" not in data:
            raise ValidationError(
                "Missing data for required field: full_name or email.",
                field_name="full_name",
            )
