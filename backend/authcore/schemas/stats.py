"""Monitoring payloads printed by ``flask auth stats``."""

from __future__ import annotations

from marshmallow import Schema, fields


class SessionStatsSchema(Schema):
    total_sessions = fields.Integer()
    sessions_per_user = fields.Dict(keys=fields.String(), values=fields.Integer())
    average_session_duration = fields.Float()
    sessions_created_last_hour = fields.Integer()
    sessions_expired_last_hour = fields.Integer()


class LockoutStatsSchema(Schema):
    total_tracked = fields.Integer()
    currently_locked = fields.Integer()


class TokenStatisticsSchema(Schema):
    total = fields.Integer()
    active = fields.Integer()
    expired = fields.Integer()
    used = fields.Integer()
    email_verification = fields.Integer()
    password_reset = fields.Integer()
