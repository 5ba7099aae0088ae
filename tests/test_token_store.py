from datetime import datetime, timedelta, timezone

import pytest

from models import SQLTokenStore
from models.refresh_token import RefreshToken
from utils.errors import TokenStorageError
from utils.security import hash_refresh_token

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_put_then_take_returns_record_once(store):
    assert store.put("tok-1", "alice", NOW + timedelta(minutes=10))

    record = store.take_and_remove("tok-1")

    assert record.token == "tok-1"
    assert record.subject == "alice"
    assert record.expires_at == NOW + timedelta(minutes=10)
    assert store.take_and_remove("tok-1") is None


def test_duplicate_put_is_refused(store):
    assert store.put("tok-1", "alice", NOW)
    assert store.put("tok-1", "bob", NOW) is False
    assert store.take_and_remove("tok-1").subject == "alice"


def test_take_unknown_token(store):
    assert store.take_and_remove("missing") is None


def test_purge_all_for_subject_is_scoped_and_idempotent(store):
    store.put("a1", "alice", NOW)
    store.put("a2", "alice", NOW)
    store.put("b1", "bob", NOW)

    store.purge_all_for_subject("alice")
    store.purge_all_for_subject("alice")

    assert store.take_and_remove("a1") is None
    assert store.take_and_remove("a2") is None
    assert store.take_and_remove("b1").subject == "bob"


def test_blacklist_is_idempotent(store):
    assert store.is_blacklisted("jti-1") is False

    store.blacklist("jti-1", NOW)
    store.blacklist("jti-1", NOW)

    assert store.is_blacklisted("jti-1") is True
    assert store.is_blacklisted("jti-2") is False


def test_blacklist_keeps_longest_lifetime(store):
    store.blacklist("jti-1", NOW + timedelta(minutes=5))
    store.blacklist("jti-1", NOW + timedelta(minutes=30))
    store.blacklist("jti-1", NOW + timedelta(minutes=1))

    assert store.purge_expired(NOW + timedelta(minutes=10)) == 0
    assert store.is_blacklisted("jti-1")
    assert store.purge_expired(NOW + timedelta(minutes=31)) == 1
    assert not store.is_blacklisted("jti-1")


def test_purge_expired(store):
    store.put("old", "alice", NOW - timedelta(minutes=1))
    store.put("new", "alice", NOW + timedelta(minutes=1))
    store.blacklist("lapsed", NOW - timedelta(seconds=1))
    store.blacklist("forever")

    assert store.purge_expired(NOW) == 2
    assert store.take_and_remove("old") is None
    assert store.take_and_remove("new") is not None
    assert store.is_blacklisted("forever")


def test_sql_store_keeps_only_token_digest(sql_storage):
    store = SQLTokenStore(sql_storage)
    store.put("secret-token", "alice", NOW)

    rows = sql_storage.get_session().query(RefreshToken).all()

    assert sql_storage.count(RefreshToken) == 1
    assert sql_storage.count() == 1
    assert rows[0].token_hash == hash_refresh_token("secret-token")
    assert "secret-token" not in rows[0].token_hash


def test_sql_store_returns_aware_datetimes(sql_storage):
    store = SQLTokenStore(sql_storage)
    store.put("tok", "alice", NOW)

    assert store.take_and_remove("tok").expires_at.tzinfo is not None


def test_sql_store_wraps_backend_failures(sql_storage):
    store = SQLTokenStore(sql_storage)
    sql_storage.drop_all()

    with pytest.raises(TokenStorageError):
        store.put("tok", "alice", NOW)
    with pytest.raises(TokenStorageError):
        store.take_and_remove("tok")
    with pytest.raises(TokenStorageError):
        store.is_blacklisted("jti")
