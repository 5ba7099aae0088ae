from marshmallow import Schema, fields, pre_load, validates, ValidationError


def _strip(v):
    return v.strip() if isinstance(v, str) else v


class TokenRequestSchema(Schema):
    subject = fields.String(required=True)
    roles = fields.List(fields.String(), load_default=list)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "subject" in data:
            data = dict(data)
            data["subject"] = _strip(data["subject"])
        return data

    @validates("subject")
    def validate_subject(self, value, **kwargs):
        if not value:
            raise ValidationError("Subject must not be empty.")


class RefreshRequestSchema(Schema):
    refresh_token = fields.String(required=True)


class LogoutRequestSchema(Schema):
    all_sessions = fields.Boolean(load_default=False)


class BlacklistRequestSchema(Schema):
    jti = fields.String(required=True)

    @validates("jti")
    def validate_jti(self, value, **kwargs):
        if not value.strip():
            raise ValidationError("jti must not be empty.")


class TokenPairOutSchema(Schema):
    access_token = fields.String()
    refresh_token = fields.String()
    token_type = fields.String(dump_default="bearer")
    expires_in = fields.Integer()


class AccessTokenOutSchema(Schema):
    access_token = fields.String()
    token_type = fields.String(dump_default="bearer")
    expires_in = fields.Integer()


class RefreshOutSchema(Schema):
    subject = fields.String()
    refresh_token = fields.String()


class ClaimsOutSchema(Schema):
    subject = fields.String(attribute="sub")
    jti = fields.String()
    roles = fields.List(fields.String(), dump_default=list)
    issuer = fields.String(attribute="iss")
    audience = fields.String(attribute="aud")
    expires_at = fields.Integer(attribute="exp")
