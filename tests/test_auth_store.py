from storefront_client.auth_store import AuthStore
from storefront_client.models import User
from storefront_client.storage import MemoryStorage


def make_user(**extra):
    return User(id="u1", name="Alice", email="alice@example.com", **extra)


def test_login_persists_session():
    storage = MemoryStorage()
    store = AuthStore(storage)
    store.login(make_user(), "tok-1", "ref-1")

    assert store.is_authenticated
    assert store.session.accessToken == "tok-1"
    record = storage.load("storefront-auth-storage")
    assert record["token"] == "tok-1"
    assert record["refreshToken"] == "ref-1"
    assert record["isAuthenticated"] is True

    restored = AuthStore(storage)
    assert restored.user.email == "alice@example.com"
    assert restored.token == "tok-1"


def test_logout_clears_state_and_storage():
    storage = MemoryStorage()
    store = AuthStore(storage)
    store.login(make_user(), "tok-1")
    store.logout()

    assert not store.is_authenticated
    assert store.user is None
    assert store.session is None
    assert storage.load("auth") is None


def test_update_user_merges_and_keeps_token():
    store = AuthStore(MemoryStorage())
    store.login(make_user(phone="111"), "tok-1")
    store.update_user({"name": "Alice B", "firstName": "Alice"})

    assert store.user.name == "Alice B"
    assert store.user.email == "alice@example.com"
    assert store.user.model_dump()["phone"] == "111"
    assert store.user.model_dump()["firstName"] == "Alice"
    assert store.token == "tok-1"


def test_update_user_without_session_is_noop():
    store = AuthStore(MemoryStorage())
    store.update_user({"name": "Nobody"})
    assert store.user is None


def test_update_token_rotates_credential_only():
    store = AuthStore(MemoryStorage())
    store.login(make_user(), "tok-1")
    store.update_token("tok-2")
    assert store.token == "tok-2"
    assert store.user.id == "u1"
    assert store.is_authenticated


def test_is_admin():
    store = AuthStore(MemoryStorage())
    store.login(make_user(), "t")
    assert not store.is_admin
    store.login(User(id="a", email="admin@example.com", role="ADMIN"), "t")
    assert store.is_admin


def test_incomplete_persisted_session_is_logged_out():
    storage = MemoryStorage()
    storage.save("auth", {"user": None, "token": "t", "isAuthenticated": True})

    store = AuthStore(storage, "auth")

    assert not store.is_authenticated
    assert store.user is None
    assert store.session is None
    assert storage.load("auth") is None
