"""
Authentication blueprint:
- POST   /auth/tokens                      -> issue access + refresh token pair
- POST   /auth/access-token                -> issue an access token only
- POST   /auth/refresh                     -> rotate a refresh token (single use)
- POST   /auth/logout                      -> blacklist the presented access token
- GET    /auth/me                          -> claims of the presented access token
- GET    /auth/blacklist/<jti>             -> (admin) revocation lookup
- POST   /auth/blacklist                   -> (admin) revoke an access token by jti
- DELETE /auth/subjects/<subject>/tokens   -> (admin) purge a subject's refresh tokens

Credentials are verified upstream; /auth/tokens and /auth/access-token only
answer that service, identified by SERVICE_API_KEY in the X-Service-Key header.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.token import (
    TokenRequestSchema,
    RefreshRequestSchema,
    LogoutRequestSchema,
    BlacklistRequestSchema,
    TokenPairOutSchema,
    AccessTokenOutSchema,
    RefreshOutSchema,
    ClaimsOutSchema,
)
from utils.decorators import get_issuer, jwt_required, roles_required, service_key_required
from utils.issuer import Accepted

from .errors import error_response

ADMIN_ROLES = ["admin"]

bp = Blueprint("auth", __name__)

token_request_schema = TokenRequestSchema()
refresh_request_schema = RefreshRequestSchema()
logout_request_schema = LogoutRequestSchema()
blacklist_request_schema = BlacklistRequestSchema()
token_pair_out_schema = TokenPairOutSchema()
access_token_out_schema = AccessTokenOutSchema()
refresh_out_schema = RefreshOutSchema()
claims_out_schema = ClaimsOutSchema()


def _access_expires_in() -> int:
    return int(get_issuer().settings.access_expiration.total_seconds())


@bp.post("/tokens")
@service_key_required()
def issue_tokens():
    """
    Issue an access token and a refresh token for an authenticated subject.
    ---
    tags:
      - Auth
    security:
      - ServiceKey: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            subject: { type: string }
            roles: { type: array, items: { type: string } }
    responses:
      201:
        description: Created (returns tokens)
      401:
        description: Missing or invalid service key
      422:
        description: Validation error
      503:
        description: Token store unavailable
    """
    payload = request.get_json(silent=True) or {}
    data = token_request_schema.load(payload)

    pair = get_issuer().issue_token_pair(data["subject"], data["roles"])
    current_app.logger.info("Issued token pair for subject=%s", data["subject"])

    return jsonify(
        token_pair_out_schema.dump(
            {
                "access_token": pair.access_token,
                "refresh_token": pair.refresh_token,
                "expires_in": _access_expires_in(),
            }
        )
    ), 201


@bp.post("/access-token")
@service_key_required()
def issue_access_token():
    """
    Issue an access token only (e.g. after a successful refresh).
    ---
    tags:
      - Auth
    security:
      - ServiceKey: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            subject: { type: string }
            roles: { type: array, items: { type: string } }
    responses:
      201:
        description: Created
      401:
        description: Missing or invalid service key
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = token_request_schema.load(payload)

    token = get_issuer().issue_access_token(data["subject"], data["roles"])
    return jsonify(
        access_token_out_schema.dump({"access_token": token, "expires_in": _access_expires_in()})
    ), 201


@bp.post("/refresh")
def refresh():
    """
    Rotate a refresh token. The presented token is consumed either way.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            refresh_token: { type: string }
    responses:
      200:
        description: OK (returns subject and replacement refresh token)
      401:
        description: No valid session, re-authenticate
      503:
        description: Token store unavailable, retry
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_request_schema.load(payload)

    result = get_issuer().rotate_refresh_token(data["refresh_token"])
    if not isinstance(result, Accepted):
        current_app.logger.info("Refresh rejected (%s)", result.reason)
        return error_response(
            "SESSION_INVALID",
            "Refresh token is not valid for rotation; sign in again",
            401,
            details={"reason": result.reason},
        )

    return jsonify(
        refresh_out_schema.dump({"subject": result.subject, "refresh_token": result.refresh_token})
    ), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    logout: blacklists the presented access token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             all_sessions: { type: boolean }
    responses:
      204:
        description: ""
      401:
        description: Unauthorized
    """
    payload = request.get_json(silent=True) or {}
    data = logout_request_schema.load(payload)

    issuer = get_issuer()
    issuer.revoke_access_token(g.current_token)
    if data["all_sessions"]:
        issuer.revoke_subject(g.current_subject)

    return ("", 204)


@bp.get("/me")
@jwt_required()
def me():
    """
    Claims of the presented access token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": claims_out_schema.dump(g.current_token_claims)}), 200


@bp.get("/blacklist/<jti>")
@roles_required(ADMIN_ROLES)
def blacklist_status(jti: str):
    """
    Check whether an access token id is revoked
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: path
        name: jti
        type: string
        required: true
    responses:
      200:
        description: OK
      403:
        description: Insufficient role
    """
    return jsonify({"jti": jti, "blacklisted": get_issuer().is_blacklisted(jti)}), 200


@bp.post("/blacklist")
@roles_required(ADMIN_ROLES)
def blacklist_token():
    """
    Revoke an access token by its jti
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            jti: { type: string }
    responses:
      204:
        description: ""
      403:
        description: Insufficient role
    """
    payload = request.get_json(silent=True) or {}
    data = blacklist_request_schema.load(payload)

    get_issuer().blacklist(data["jti"].strip())
    return ("", 204)


@bp.delete("/subjects/<subject>/tokens")
@roles_required(ADMIN_ROLES)
def purge_subject_tokens(subject: str):
    """
    Purge every refresh token issued to a subject (logout everywhere)
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: path
        name: subject
        type: string
        required: true
    responses:
      204:
        description: ""
      403:
        description: Insufficient role
    """
    get_issuer().revoke_subject(subject)
    current_app.logger.info("Purged refresh tokens for subject=%s by %s", subject, g.current_subject)
    return ("", 204)
