"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates, validates_schema

_NAME_LENGTH = validate.Length(min=1, max=50)


class RegisterSchema(Schema):
    """Input payload for account registration."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=8, max=128))
    first_name = fields.String(required=True, validate=_NAME_LENGTH)
    last_name = fields.String(required=True, validate=_NAME_LENGTH)

    @validates("first_name")
    def _first_name_not_blank(self, value: str, **_: object) -> None:
        if not value.strip():
            raise ValidationError("First name is required.")

    @validates("last_name")
    def _last_name_not_blank(self, value: str, **_: object) -> None:
        if not value.strip():
            raise ValidationError("Last name is required.")


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class VerifyTokenSchema(Schema):
    """Input payload for consuming an email verification token."""

    token = fields.String(required=True, validate=validate.Length(min=1, max=255))
    email = fields.Email(required=True, validate=validate.Length(max=254))



class PasswordResetSchema(Schema):
    """Input payload for setting a new password with a reset token."""

    token = fields.String(required=True, validate=validate.Length(min=1, max=255))
    new_password = fields.String(required=True, validate=validate.Length(min=8, max=128))


class ChangePasswordSchema(Schema):
    """Input payload for changing the password of a signed-in user."""

    current_password = fields.String(required=True, validate=validate.Length(min=1, max=128))
    new_password = fields.String(required=True, validate=validate.Length(min=8, max=128))

    @validates_schema
    def _new_differs_from_current(self, data: dict, **_: object) -> None:
        if data.get("current_password") == data.get("new_password"):
            raise ValidationError(
                "New password must differ from the current one.", "new_password"
            )
