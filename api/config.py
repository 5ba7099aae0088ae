"""
Environment-aware configuration.
Token settings (issuer, audience, lifetimes, clock skew, signing key) and the
token store backend are read from the environment; .env is honoured.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

from utils.errors import TokenConfigurationError

load_dotenv()  # Read .env if present

DEV_JWT_SECRET = "dev-secret-change-me-to-at-least-32-bytes"


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # Keep a copy of env for visibility
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Signing credentials: JWT_SECRET for HS*, key pair (PEM) for RS*/ES*
    JWT_SECRET = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_PRIVATE_KEY = os.getenv("JWT_PRIVATE_KEY")
    JWT_PUBLIC_KEY = os.getenv("JWT_PUBLIC_KEY")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "token-lifecycle-api")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "token-lifecycle-clients")
    # Shared secret the credential-verifying service sends to mint tokens
    SERVICE_API_KEY = os.getenv("SERVICE_API_KEY")

    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "1209600")))
    TOKEN_CLOCK_SKEW = timedelta(seconds=int(os.getenv("TOKEN_CLOCK_SKEW_SECONDS", "60")))

    # "sql" (DATABASE_URL) or "memory" (single process only)
    TOKEN_STORE = os.getenv("TOKEN_STORE", "sql")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///token-store.db")
    SQL_ECHO = False

    @classmethod
    def validate(cls, config) -> None:
        """Fail fast on settings that would only surface at the first request."""
        if config.get("TOKEN_STORE") not in ("sql", "memory"):
            raise TokenConfigurationError(
                f"TOKEN_STORE must be 'sql' or 'memory', got {config.get('TOKEN_STORE')!r}"
            )
        if config.get("TOKEN_STORE") == "sql" and not config.get("DATABASE_URL"):
            raise TokenConfigurationError("DATABASE_URL is required for the sql token store")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    DEBUG = False

    @classmethod
    def validate(cls, config) -> None:
        super().validate(config)
        algorithm = config.get("JWT_ALGORITHM", "HS256")
        if algorithm.startswith("HS") and config.get("JWT_SECRET") in (None, "", DEV_JWT_SECRET):
            raise TokenConfigurationError("Set JWT_SECRET to a strong secret in production")
        if not config.get("SERVICE_API_KEY"):
            raise TokenConfigurationError("Set SERVICE_API_KEY so token issuance is restricted")


class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    JWT_SECRET = "test-jwt-secret-with-enough-bytes-for-hs256"
    JWT_ALGORITHM = "HS256"
    JWT_ISSUER = "test-issuer"
    JWT_AUDIENCE = "test-audience"
    SERVICE_API_KEY = "test-service-key"
    ACCESS_TOKEN_EXPIRES = timedelta(minutes=15)
    REFRESH_TOKEN_EXPIRES = timedelta(minutes=10)
    TOKEN_CLOCK_SKEW = timedelta(minutes=1)
    TOKEN_STORE = "memory"
    DATABASE_URL = "sqlite://"
    LOG_LEVEL = "DEBUG"


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
