# Overview: Request authentication decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .services import identity_service


def _key_matches(config_key: str) -> bool:
    expected = current_app.config.get(config_key) or ""
    provided = request.headers.get("X-API-KEY") or ""
    # Unset key rejects everything
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_api_key(f):
    """
    Require the shared client API key (X-API-KEY header).

    SECURITY: Returns 401 if the header is missing or does not match API_KEY.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _key_matches("API_KEY"):
            return jsonify({"error": "Invalid API key"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_admin_api_key(f):
    """Require the administrator API key (X-API-KEY header matching ADMIN_API_KEY)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _key_matches("ADMIN_API_KEY"):
            return jsonify({"error": "Invalid API key"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_identity(f):
    """
    Require a consumer identity token.

    Sets g.uid to the external uid resolved from the Bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token is invalid, expired or resolves to no identity
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        uid = identity_service.resolve_identity(token)

        if not uid:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.uid = uid
        return f(*args, **kwargs)

    return decorated_function
