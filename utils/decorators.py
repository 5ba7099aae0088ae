from __future__ import annotations
import hmac
from functools import wraps
from flask import request, g, abort, current_app

SERVICE_KEY_HEADER = "X-Service-Key"


def get_issuer():
    """TokenIssuer built by create_app()."""
    return current_app.extensions["token_issuer"]


def service_key_required():
    """
    Only the credential-verifying service may mint tokens: it must send
    SERVICE_API_KEY in the X-Service-Key header. With no key configured
    every call is refused.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            expected = current_app.config.get("SERVICE_API_KEY") or ""
            presented = request.headers.get(SERVICE_KEY_HEADER, "")
            if not expected or not hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8")):
                current_app.logger.warning("Refused token issuance from %s", request.remote_addr)
                abort(401, description="Missing or invalid service key")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                abort(401, description="Missing or invalid Authorization header")
            token = auth.split(" ", 1)[1].strip()
            # InvalidTokenError and TokenStorageError go to the app error handlers
            claims = get_issuer().verify_access_token(token)

            g.current_subject = claims["sub"]
            g.current_user_roles = claims.get("roles", [])
            g.current_token_jti = claims["jti"]
            g.current_token_claims = claims
            g.current_token = token
            return fn(*args, **kwargs)

        return wrapper

    return decorator

def roles_required(required_roles: list[str]):
    """
    Allow access if the token carries ANY of the required roles.
    Deny (403) only if there is NO overlap between token roles and required_roles.
    """
    req = set(required_roles or [])
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user_roles = set(getattr(g, "current_user_roles", []))
            if not (user_roles & req):
                abort(403, description="Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
