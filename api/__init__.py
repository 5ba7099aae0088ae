import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from models import DBStorage, InMemoryTokenStore, SQLTokenStore
from utils.issuer import TokenIssuer, TokenSettings

from .config import get_config
from .errors import register_error_handlers

__version__ = "1.0.0"

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Token Lifecycle API",
        "version": __version__,
        "description": "Issues, rotates and revokes access and refresh tokens.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        },
        "ServiceKey": {
            "type": "apiKey",
            "name": "X-Service-Key",
            "in": "header",
            "description": "SERVICE_API_KEY of the credential-verifying service."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def _configure_logging(app: Flask) -> None:
    """Configure application logging from the LOG_LEVEL config value."""

    log_level_name = app.config.get("LOG_LEVEL", "INFO")
    log_level = getattr(logging, str(log_level_name).upper(), logging.INFO)
    logging.basicConfig(level=log_level)
    app.logger.setLevel(log_level)


def build_token_store(config):
    """Pick the TokenStore backend named by TOKEN_STORE."""
    if config.get("TOKEN_STORE") == "memory":
        return InMemoryTokenStore(), None
    storage = DBStorage(config["DATABASE_URL"], echo=config.get("SQL_ECHO", False))
    storage.reload()
    return SQLTokenStore(storage), storage


def create_app(config_name: str | None = None, config_overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    The token store and the issuer are built once here and shared by all requests.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)
    # Misconfiguration fails here, not at the first request
    config_class.validate(app.config)
    settings = TokenSettings.from_config(app.config)

    store, storage = build_token_store(app.config)
    app.extensions["token_store"] = store
    app.extensions["token_issuer"] = TokenIssuer(settings, store)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")

    if storage is not None:
        # Ensure the DB session is removed at the end of each request/app context
        @app.teardown_appcontext
        def remove_session(exception=None):
            storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Token Lifecycle API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    app.logger.info(
        "Token service ready (store=%s, issuer=%s)", app.config["TOKEN_STORE"], settings.issuer
    )
    return app
