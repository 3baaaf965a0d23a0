# Overview: Service-layer operations for consumer identity; issues and verifies signed identity tokens.

"""
Identity Token Service

The consumer site authenticates users elsewhere and forwards a bearer
token. The default resolver verifies tokens signed with SECRET_KEY and
returns the stable external uid they carry. Deployments with another
identity provider install their own callable as IDENTITY_RESOLVER
(token -> uid, or None if the token is not acceptable).
"""

from __future__ import annotations

from typing import Callable, Optional

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

_SALT = "orderpay-identity"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_SALT)


def issue_identity_token(uid: str) -> str:
    """Signed, timestamped token carrying uid."""
    if not isinstance(uid, str) or not uid.strip():
        raise ValueError("uid is required")
    return _serializer().dumps({"uid": uid.strip()})


def verify_identity_token(token: str) -> Optional[str]:
    max_age = current_app.config.get("IDENTITY_TOKEN_MAX_AGE", 3600)
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Identity token expired")
        return None
    except BadSignature:
        current_app.logger.warning("Identity token rejected: bad signature")
        return None

    uid = data.get("uid") if isinstance(data, dict) else None
    if not isinstance(uid, str) or not uid:
        return None
    return uid


def resolve_identity(token: str) -> Optional[str]:
    """External uid for a bearer token, via IDENTITY_RESOLVER when configured."""
    if not token:
        return None
    resolver: Callable[[str], Optional[str]] | None = current_app.config.get("IDENTITY_RESOLVER")
    if resolver is not None:
        return resolver(token)
    return verify_identity_token(token)
