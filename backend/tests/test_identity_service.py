from orderpay.services import identity_service


def test_issued_token_resolves_to_uid(app):
    token = identity_service.issue_identity_token("u1")
    assert identity_service.resolve_identity(token) == "u1"


def test_tampered_token_rejected(app):
    token = identity_service.issue_identity_token("u1")
    assert identity_service.resolve_identity(token[:-2] + "xx") is None


def test_token_signed_with_other_key_rejected(app):
    token = identity_service.issue_identity_token("u1")
    app.config["SECRET_KEY"] = "rotated"
    try:
        assert identity_service.resolve_identity(token) is None
    finally:
        app.config["SECRET_KEY"] = "test-secret"


def test_expired_token_rejected(app):
    token = identity_service.issue_identity_token("u1")
    app.config["IDENTITY_TOKEN_MAX_AGE"] = -1
    try:
        assert identity_service.resolve_identity(token) is None
    finally:
        app.config["IDENTITY_TOKEN_MAX_AGE"] = 3600


def test_empty_token(app):
    assert identity_service.resolve_identity("") is None
