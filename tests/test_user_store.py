"""Unit tests for auth/store.py -- the credential store.

Covers:
- create_user() hashes the password and enforces username/email uniqueness
- verify_credentials() returns None for wrong password and unknown user alike
- update_profile() patches only whitelisted, supplied fields
- change_password() / revoke_sessions() / delete_user()
- public views never carry the password hash
"""

import pytest

from auth.store import UserStore
from core.errors import ConflictError, NotFoundError


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def alice_id(store: UserStore) -> int:
    return store.create_user("alice", "longpass1", "a@x.com", {"firstname": "Alice", "age": 30})


class TestCreateUser:
    def test_password_is_stored_hashed(self, store: UserStore, alice_id: int) -> None:
        user = store.get_by_id(alice_id)
        assert user.hashed_password != "longpass1"
        assert user.hashed_password.startswith("$2")
        assert user.firstname == "Alice"
        assert user.age == 30
        assert user.created_at

    def test_duplicate_username(self, store: UserStore, alice_id: int) -> None:
        with pytest.raises(ConflictError):
            store.create_user("alice", "longpass1", "other@x.com")

    def test_duplicate_email_ignores_case(self, store: UserStore, alice_id: int) -> None:
        with pytest.raises(ConflictError):
            store.create_user("alice2", "longpass1", "A@X.COM")

    def test_unknown_profile_keys_are_dropped(self, store: UserStore) -> None:
        uid = store.create_user("bob", "longpass1", "b@x.com", {"session_version": 99, "phone": "1"})
        user = store.get_by_id(uid)
        assert user.session_version == 0
        assert user.phone == "1"


class TestVerifyCredentials:
    def test_match(self, store: UserStore, alice_id: int) -> None:
        user = store.verify_credentials("alice", "longpass1")
        assert user is not None and user.id == alice_id

    def test_wrong_password_and_unknown_user(self, store: UserStore, alice_id: int) -> None:
        assert store.verify_credentials("alice", "wrong-password") is None
        assert store.verify_credentials("nobody", "longpass1") is None


class TestUpdates:
    def test_update_profile_is_partial(self, store: UserStore, alice_id: int) -> None:
        store.update_profile(alice_id, {"lastname": "Smith", "username": "mallory"})
        user = store.get_by_id(alice_id)
        assert user.lastname == "Smith"
        assert user.firstname == "Alice"
        assert user.username == "alice"

    def test_update_profile_unknown_user(self, store: UserStore) -> None:
        with pytest.raises(NotFoundError):
            store.update_profile(999, {"lastname": "Smith"})
        with pytest.raises(NotFoundError):
            store.update_profile(999, {})

    def test_change_password(self, store: UserStore, alice_id: int) -> None:
        store.change_password(alice_id, "newpass99")
        assert store.verify_credentials("alice", "longpass1") is None
        assert store.verify_credentials("alice", "newpass99") is not None
        # Replacing the hash alone leaves the session version untouched.
        assert store.get_by_id(alice_id).session_version == 0

    def test_revoke_sessions_bumps_version(self, store: UserStore, alice_id: int) -> None:
        assert store.revoke_sessions(alice_id) == 1
        assert store.revoke_sessions(alice_id) == 2
        with pytest.raises(NotFoundError):
            store.revoke_sessions(999)

    def test_delete_user(self, store: UserStore, alice_id: int) -> None:
        assert store.delete_user(alice_id) is True
        assert store.get_by_id(alice_id) is None
        assert store.delete_user(alice_id) is False


class TestViews:
    def test_list_all_public_views_have_no_hash(self, store: UserStore, alice_id: int) -> None:
        store.create_user("bob", "longpass1", "b@x.com")
        views = [u.public_view() for u in store.list_all()]
        assert [v["username"] for v in views] == ["alice", "bob"]
        for view in views:
            assert "hashed_password" not in view
            assert "session_version" not in view
