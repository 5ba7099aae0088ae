from datetime import datetime, timedelta, timezone

import pytest

from api import create_app
from api.config import TestingConfig
from models import DBStorage, InMemoryTokenStore, SQLTokenStore
from utils.issuer import TokenIssuer, TokenSettings
from utils.security import SigningCredentials


class FakeClock:
    """Controllable clock; starts at the real current time so PyJWT's own exp check agrees."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def settings():
    return TokenSettings(
        credentials=SigningCredentials("HS256", TestingConfig.JWT_SECRET, TestingConfig.JWT_SECRET),
        issuer=TestingConfig.JWT_ISSUER,
        audience=TestingConfig.JWT_AUDIENCE,
        access_expiration=timedelta(minutes=15),
        refresh_expiration=timedelta(minutes=10),
        clock_skew=timedelta(minutes=1),
    )


@pytest.fixture()
def sql_storage():
    storage = DBStorage("sqlite://")
    storage.reload()
    yield storage
    storage.close()
    storage.drop_all()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryTokenStore()
    return SQLTokenStore(request.getfixturevalue("sql_storage"))


@pytest.fixture()
def issuer(settings, store, clock):
    return TokenIssuer(settings, store, clock=clock)


@pytest.fixture()
def app():
    app = create_app("testing")
    app.config.update({"TESTING": True})
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def bearer(app):
    """Build an Authorization header for a freshly issued access token."""

    def _bearer(subject="alice", roles=None):
        token = app.extensions["token_issuer"].issue_access_token(subject, roles)
        return {"Authorization": f"Bearer {token}"}

    return _bearer


@pytest.fixture()
def service_headers():
    """X-Service-Key header of the credential-verifying service."""
    return {"X-Service-Key": TestingConfig.SERVICE_API_KEY}
