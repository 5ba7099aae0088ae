"""Persistence layer: token store contract and its in-memory and SQL implementations."""
from models.token_store import TokenStore, InMemoryTokenStore, RefreshTokenRecord
from models.db_storage import DBStorage
from models.sql_token_store import SQLTokenStore

__all__ = [
    "TokenStore",
    "InMemoryTokenStore",
    "RefreshTokenRecord",
    "DBStorage",
    "SQLTokenStore",
]
