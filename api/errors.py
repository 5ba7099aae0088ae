from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
import logging

from utils.errors import (
    InvalidTokenError,
    TokenConfigurationError,
    TokenExpiredError,
    TokenRevokedError,
    TokenStorageError,
)


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def register_error_handlers(app):
    # 400 Bad Request (generic)
    @app.errorhandler(400)
    def bad_request(e):
        message = getattr(e, "description", "Bad request")
        return error_response("BAD_REQUEST", message, 400)

    # 401 Unauthorized (missing/invalid bearer token)
    @app.errorhandler(401)
    def unauthorized(e):
        message = getattr(e, "description", "Unauthorized")
        return error_response("UNAUTHORIZED", message, 401)

    # 403 Forbidden (missing role)
    @app.errorhandler(403)
    def forbidden(e):
        message = getattr(e, "description", "Forbidden")
        return error_response("FORBIDDEN", message, 403)

    # 404 Not Found
    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", 404)

    # 422 Unprocessable Entity (validation)
    @app.errorhandler(422)
    def unprocessable(e):
        message = getattr(e, "description", "Unprocessable entity")
        return error_response("VALIDATION_ERROR", message, 422)

    # Marshmallow validation errors map to 422
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        # err.messages contains field-level details
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # Access token verification failures
    @app.errorhandler(InvalidTokenError)
    def handle_invalid_token(err: InvalidTokenError):
        if isinstance(err, TokenExpiredError):
            return error_response("TOKEN_EXPIRED", str(err), 401)
        if isinstance(err, TokenRevokedError):
            return error_response("TOKEN_REVOKED", str(err), 401)
        return error_response("INVALID_TOKEN", str(err), 401)

    # Store unreachable: retryable, never reported as an invalid session
    @app.errorhandler(TokenStorageError)
    def handle_storage_error(err: TokenStorageError):
        logging.exception("Token store failure", exc_info=err)
        return error_response("SERVICE_UNAVAILABLE", "Token store unavailable, retry later", 503)

    @app.errorhandler(TokenConfigurationError)
    def handle_configuration_error(err: TokenConfigurationError):
        logging.exception("Token configuration error", exc_info=err)
        return error_response("INTERNAL_ERROR", "Token service is misconfigured", 500)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        label = (err.name or "Bad Request").upper().replace(" ", "_")
        return error_response(label, err.description, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        # In dev, include exception details to speed up debugging
        details = None
        logging.exception("Unhandled exception", exc_info=err)
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
