"""
Token lifecycle exceptions.

- TokenConfigurationError: signing configuration missing or unusable (fatal)
- TokenStorageError: persistence backend failed (infrastructure, retryable)
- InvalidTokenError and subclasses: a presented access token must not be honoured
"""


class TokenError(Exception):
    """Base exception for token lifecycle errors."""


class TokenConfigurationError(TokenError):
    """Raised when signing credentials or token settings are missing."""


class TokenStorageError(TokenError):
    """Raised when the token store cannot complete a read or write."""


class InvalidTokenError(TokenError):
    """Raised when an access token fails verification."""


class TokenExpiredError(InvalidTokenError):
    """Raised when an access token is past its expiry."""


class TokenRevokedError(InvalidTokenError):
    """Raised when an access token's jti is on the blacklist."""
