from datetime import timedelta

import jwt
import pytest

from models import InMemoryTokenStore
from utils.errors import (
    InvalidTokenError,
    TokenConfigurationError,
    TokenExpiredError,
    TokenRevokedError,
    TokenStorageError,
)
from utils.issuer import TokenIssuer, TokenPair, TokenSettings
from utils.security import SigningCredentials


def _decode(token, settings):
    return jwt.decode(
        token,
        settings.credentials.verification_key,
        algorithms=[settings.credentials.algorithm],
        audience=settings.audience,
        issuer=settings.issuer,
    )


@pytest.mark.parametrize(
    "subject, roles",
    [
        ("alice", ["admin", "user"]),
        ("bob", ["user", "admin"]),
        ("carol@example.com", ["reader"]),
        ("42", []),
    ],
)
def test_access_token_carries_subject_and_roles(issuer, settings, subject, roles):
    claims = _decode(issuer.issue_access_token(subject, roles), settings)

    assert claims["sub"] == subject
    assert set(claims.get("roles", [])) == set(roles)


def test_access_token_tolerates_duplicate_roles(issuer, settings):
    claims = _decode(issuer.issue_access_token("alice", ["user", "admin", "user"]), settings)
    assert sorted(claims["roles"]) == ["admin", "user"]


def test_single_role_string_is_one_role(issuer, settings):
    claims = _decode(issuer.issue_access_token("alice", "admin"), settings)
    assert claims["roles"] == ["admin"]


def test_access_token_without_roles_has_no_role_claim(issuer, settings):
    claims = _decode(issuer.issue_access_token("alice"), settings)
    assert "roles" not in claims


def test_access_token_standard_claims(issuer, settings, clock):
    claims = _decode(issuer.issue_access_token("alice"), settings)

    assert claims["iss"] == settings.issuer
    assert claims["aud"] == settings.audience
    assert claims["type"] == "access"
    assert claims["exp"] == int((clock() + timedelta(minutes=15)).timestamp())
    assert claims["jti"]


def test_access_token_custom_expiration(issuer, settings, clock):
    token = issuer.issue_access_token("alice", expiration=timedelta(minutes=2))
    assert _decode(token, settings)["exp"] == int((clock() + timedelta(minutes=2)).timestamp())


def test_access_token_does_not_touch_store(settings, clock):
    class NoStore:
        def __getattr__(self, name):
            raise AssertionError(f"store.{name} must not be called")

    issuer = TokenIssuer(settings, NoStore(), clock=clock)
    assert issuer.issue_access_token("alice", ["user"])


def test_access_token_ids_are_unique(issuer, settings):
    jtis = {
        jwt.decode(issuer.issue_access_token("alice"), options={"verify_signature": False})["jti"]
        for _ in range(10_000)
    }
    assert len(jtis) == 10_000


def test_empty_subject_is_rejected(issuer):
    with pytest.raises(ValueError):
        issuer.issue_access_token("")
    with pytest.raises(ValueError):
        issuer.issue_refresh_token("")


def test_missing_signing_credentials_is_configuration_error(settings, clock):
    unsigned = TokenSettings(credentials=None, issuer=settings.issuer, audience=settings.audience)
    issuer = TokenIssuer(unsigned, InMemoryTokenStore(), clock=clock)

    with pytest.raises(TokenConfigurationError):
        issuer.issue_access_token("alice")


def test_refresh_token_is_recorded_before_return(settings, clock):
    store = InMemoryTokenStore()
    issuer = TokenIssuer(settings, store, clock=clock)

    token = issuer.issue_refresh_token("alice")
    record = store.take_and_remove(token)

    assert record.subject == "alice"
    assert record.expires_at == clock() + timedelta(minutes=10)


def test_refresh_tokens_are_opaque_and_distinct(issuer):
    first = issuer.issue_refresh_token("alice")
    second = issuer.issue_refresh_token("alice")

    assert first != second
    assert "." not in first


def test_refresh_token_not_returned_when_store_write_fails(settings, clock):
    class BrokenStore(InMemoryTokenStore):
        def put(self, token, subject, expires_at):
            raise TokenStorageError("disk full")

    issuer = TokenIssuer(settings, BrokenStore(), clock=clock)
    with pytest.raises(TokenStorageError):
        issuer.issue_refresh_token("alice")


def test_refresh_token_regenerated_on_collision(settings, clock):
    class CollidingOnce(InMemoryTokenStore):
        calls = 0

        def put(self, token, subject, expires_at):
            self.calls += 1
            if self.calls == 1:
                return False
            return super().put(token, subject, expires_at)

    store = CollidingOnce()
    token = TokenIssuer(settings, store, clock=clock).issue_refresh_token("alice")

    assert store.calls == 2
    assert store.take_and_remove(token).subject == "alice"


def test_refresh_token_gives_up_after_repeated_collisions(settings, clock):
    class AlwaysColliding(InMemoryTokenStore):
        def put(self, token, subject, expires_at):
            return False

    with pytest.raises(TokenStorageError):
        TokenIssuer(settings, AlwaysColliding(), clock=clock).issue_refresh_token("alice")


def test_token_pair(issuer, settings):
    pair = issuer.issue_token_pair("alice", ["user"])

    assert isinstance(pair, TokenPair)
    assert _decode(pair.access_token, settings)["sub"] == "alice"
    assert issuer.store.take_and_remove(pair.refresh_token).subject == "alice"


def test_verify_access_token(issuer):
    claims = issuer.verify_access_token(issuer.issue_access_token("alice", ["user"]))
    assert claims["sub"] == "alice"
    assert claims["roles"] == ["user"]


def test_verify_rejects_blacklisted_token(issuer):
    token = issuer.issue_access_token("alice")
    jti = issuer.revoke_access_token(token)

    assert issuer.is_blacklisted(jti)
    with pytest.raises(TokenRevokedError):
        issuer.verify_access_token(token)


def test_verify_rejects_expired_token(issuer):
    token = issuer.issue_access_token("alice", expiration=timedelta(minutes=-5))
    with pytest.raises(TokenExpiredError):
        issuer.verify_access_token(token)


def test_verify_rejects_foreign_audience(issuer, settings, store, clock):
    other = TokenSettings(
        credentials=settings.credentials, issuer=settings.issuer, audience="someone-else"
    )
    token = TokenIssuer(other, store, clock=clock).issue_access_token("alice")

    with pytest.raises(InvalidTokenError):
        issuer.verify_access_token(token)


def test_verify_rejects_tampered_signature(issuer, settings, store, clock):
    forged = TokenSettings(
        credentials=SigningCredentials("HS256", "x" * 40, "x" * 40),
        issuer=settings.issuer,
        audience=settings.audience,
    )
    token = TokenIssuer(forged, store, clock=clock).issue_access_token("alice")

    with pytest.raises(InvalidTokenError):
        issuer.verify_access_token(token)


def test_expired_token_can_still_be_revoked(issuer):
    token = issuer.issue_access_token("alice", expiration=timedelta(minutes=-5))
    jti = issuer.revoke_access_token(token)
    assert issuer.is_blacklisted(jti)


def test_settings_from_config():
    settings = TokenSettings.from_config(
        {
            "JWT_SECRET": "s" * 32,
            "JWT_ALGORITHM": "HS256",
            "JWT_ISSUER": "iss",
            "JWT_AUDIENCE": "aud",
            "ACCESS_TOKEN_EXPIRES": timedelta(minutes=5),
            "REFRESH_TOKEN_EXPIRES": 3600,
        }
    )

    assert settings.credentials.signing_key == "s" * 32
    assert settings.access_expiration == timedelta(minutes=5)
    assert settings.refresh_expiration == timedelta(hours=1)
    assert settings.clock_skew == timedelta(seconds=60)


@pytest.mark.parametrize(
    "config",
    [
        {"JWT_ALGORITHM": "HS256", "JWT_ISSUER": "iss", "JWT_AUDIENCE": "aud"},
        {"JWT_SECRET": "s" * 32, "JWT_AUDIENCE": "aud"},
        {"JWT_ALGORITHM": "RS256", "JWT_PRIVATE_KEY": "pem", "JWT_ISSUER": "iss", "JWT_AUDIENCE": "aud"},
    ],
)
def test_settings_from_incomplete_config(config):
    with pytest.raises(TokenConfigurationError):
        TokenSettings.from_config(config)
