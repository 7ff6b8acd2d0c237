import threading

import httpx
import pytest

from storefront_client.cart import CartStore, CartSyncEngine
from storefront_client.clients import ApiClient
from storefront_client.models import LineKey, User
from storefront_client.notifications import Notifier
from storefront_client.storage import MemoryStorage


def test_login_replaces_guest_cart_with_server_cart(storefront, backend, line):
    storefront.cart.add_item(line("p1", size="M"))
    storefront.cart.add_item(line("p3"))
    backend.add_cart_line("u1", "p2", 1, size="32")

    storefront.session.sign_in("alice@example.com", "secret123")

    items = storefront.cart.items
    assert [(i.productId, i.size, i.quantity) for i in items] == [("p2", "32", 1)]
    assert storefront.cart.user_id == "u1"
    assert storefront.cart.initialized


def test_switching_users_drops_previous_owner_lines(storefront, backend):
    backend.add_cart_line("u1", "p1", 2)
    backend.add_cart_line("u2", "p3", 1)

    storefront.session.sign_in("alice@example.com", "secret123")
    assert [i.productId for i in storefront.cart.items] == ["p1"]

    storefront.session.sign_in("bob@example.com", "secret123")
    assert [i.productId for i in storefront.cart.items] == ["p3"]
    assert storefront.cart.user_id == "u2"


def test_logout_always_yields_empty_guest_cart(signed_in, backend, line):
    signed_in.cart.add_item(line("p1"))
    assert signed_in.cart.items

    signed_in.cart.logout()
    assert signed_in.cart.items == []
    assert signed_in.cart.user_id is None
    assert not signed_in.cart.initialized

    signed_in.cart.logout()
    assert signed_in.cart.items == []


def test_repeated_sync_fetches_once(signed_in, backend):
    fetches = backend.request_count("GET", "/cart")
    signed_in.cart.sync_cart("u1")
    signed_in.cart.sync_cart("u1")
    assert backend.request_count("GET", "/cart") == fetches


def test_concurrent_syncs_fetch_once(storefront, backend):
    _alice(backend, storefront)
    before = backend.request_count("GET", "/cart")
    threads = [threading.Thread(target=storefront.cart.sync_cart, args=("u1",)) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert backend.request_count("GET", "/cart") == before + 1


def _alice(backend, storefront):
    token = backend.issue_token("u1")
    storefront.auth.login(User(id="u1", email="alice@example.com"), token)
    return storefront.auth.user


def test_sync_without_user_resets_to_guest(storefront, line):
    storefront.cart.add_item(line("p1"))
    storefront.cart.sync_cart(None)
    assert storefront.cart.items == []
    assert storefront.cart.user_id is None
    assert storefront.cart.initialized


def test_sync_failure_clears_lines_but_marks_initialized(storefront, backend, notifier):
    _alice(backend, storefront)
    backend.add_cart_line("u1", "p1", 1)
    backend.fail_next("GET", "/cart", status=500)

    storefront.cart.sync_cart("u1")
    assert storefront.cart.items == []
    assert storefront.cart.user_id == "u1"
    assert storefront.cart.initialized
    assert notifier.last.level == "error"

    # no retry loop: the next call is a no-op
    count = backend.request_count("GET", "/cart")
    storefront.cart.sync_cart("u1")
    assert backend.request_count("GET", "/cart") == count


def test_sync_unauthorized_falls_back_to_guest(storefront, backend):
    _alice(backend, storefront)
    backend.revoke_token(storefront.auth.token)

    storefront.cart.sync_cart("u1")
    assert storefront.cart.user_id is None
    assert storefront.cart.items == []
    assert not storefront.auth.is_authenticated


def test_authenticated_add_goes_to_server_and_refetches(signed_in, backend, line):
    assert signed_in.cart.add_item(line("p1", size="M", quantity=2))
    assert signed_in.cart.add_item(line("p1", size="M", quantity=1))

    assert backend.carts["u1"][0]["quantity"] == 3
    items = signed_in.cart.items
    assert len(items) == 1
    assert items[0].quantity == 3
    assert items[0].name == "Linen Shirt"  # display data comes from the server


def test_authenticated_update_and_remove(signed_in, backend, line):
    signed_in.cart.add_item(line("p1", size="M"))
    signed_in.cart.add_item(line("p2"))

    assert signed_in.cart.update_quantity("p1", 4, size="M")
    assert backend.carts["u1"][0]["quantity"] == 4
    assert signed_in.cart.store.find(LineKey(productId="p1", size="M")).quantity == 4

    assert signed_in.cart.update_quantity("p1", 0, size="M")
    assert [i.productId for i in signed_in.cart.items] == ["p2"]

    assert signed_in.cart.remove_item("p2")
    assert signed_in.cart.items == []
    assert backend.carts["u1"] == []


def test_rejected_mutation_leaves_cart_unchanged(signed_in, backend, notifier, line):
    signed_in.cart.add_item(line("p3", quantity=2))
    before = signed_in.cart.items

    assert not signed_in.cart.add_item(line("p3", quantity=1))
    assert signed_in.cart.items == before
    assert notifier.last.message == "Insufficient stock"


def test_update_of_unknown_line_is_reported_false(signed_in):
    assert not signed_in.cart.update_quantity("p2", 2)


def test_clear_cart_empties_locally_even_if_server_fails(signed_in, backend, line):
    signed_in.cart.add_item(line("p1"))
    backend.fail_next("DELETE", "/cart/clear", status=503)

    signed_in.cart.clear_cart()
    assert signed_in.cart.items == []
    assert backend.carts["u1"]  # server still holds the line; next sync reconciles


def test_clear_cart_authenticated(signed_in, backend, line):
    signed_in.cart.add_item(line("p1"))
    signed_in.cart.clear_cart()
    assert backend.carts["u1"] == []
    assert signed_in.cart.items == []


def test_concurrent_adds_of_same_line_are_not_lost(signed_in, backend, line):
    threads = [threading.Thread(target=signed_in.cart.add_item, args=(line("p1", size="M"),)) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert backend.carts["u1"][0]["quantity"] == 4
    assert signed_in.cart.items[0].quantity == 4


def test_engine_is_isolated_per_instance(api_http):
    a = CartSyncEngine(ApiClient(http_client=api_http), CartStore(MemoryStorage()), Notifier())
    b = CartSyncEngine(ApiClient(http_client=api_http), CartStore(MemoryStorage()), Notifier())
    a.sync_cart(None)
    assert a.initialized
    assert not b.initialized


def test_add_reports_failure_when_refetch_fails(signed_in, backend, notifier, line):
    backend.fail_next("GET", "/cart", status=500)

    assert not signed_in.cart.add_item(line("p1"))

    assert backend.carts["u1"][0]["productId"] == "p1"
    assert signed_in.cart.items == []
    assert notifier.last.message == "Failed to load your cart"
    assert "Added to cart!" not in notifier.messages()


def test_remove_reports_failure_when_refetch_fails(signed_in, backend, notifier, line, monkeypatch):
    signed_in.cart.add_item(line("p1"))
    # the first GET resolves the server line id, the second is the re-fetch
    requests = {"count": 0}
    original = signed_in.api.get

    def get(path, params=None):
        if path == "/cart":
            requests["count"] += 1
            if requests["count"] == 2:
                backend.fail_next("GET", "/cart", status=500)
        return original(path, params=params)

    monkeypatch.setattr(signed_in.api, "get", get)
    assert not signed_in.cart.remove_item("p1")
    assert backend.carts["u1"] == []
    assert notifier.last.message == "Failed to load your cart"


def _engine_serving(cart_items):
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {"cart": {"items": cart_items}}})

    notifier = Notifier()
    http = httpx.Client(base_url="http://api.test/api", transport=httpx.MockTransport(handler))
    engine = CartSyncEngine(ApiClient(http_client=http), CartStore(MemoryStorage()), notifier)
    return engine, notifier


@pytest.mark.parametrize("entry", [
    {"id": "ci_1", "product": {"id": "p1", "name": "Linen Shirt", "price": 1299, "stock": -3}, "quantity": 1},
    {"id": "ci_1", "product": {"id": "p1", "name": "Linen Shirt", "price": 1299, "stock": 4}},
    {"id": "ci_1", "product": "p1", "quantity": 1},
    "ci_1",
])
def test_malformed_server_cart_counts_as_failed_sync(entry):
    engine, notifier = _engine_serving([entry])

    assert engine.sync_cart("u1") is None
    assert engine.items == []
    assert engine.user_id == "u1"
    assert engine.initialized
    assert notifier.last.message == "Failed to load your cart"


def test_missing_stock_syncs_as_zero():
    engine, _ = _engine_serving([
        {"id": "ci_1", "product": {"id": "p1", "name": "Linen Shirt", "price": 1299, "stock": None}, "quantity": 1},
    ])

    engine.sync_cart("u1")
    assert [(i.productId, i.availableStock) for i in engine.items] == [("p1", 0)]


def test_logout_drops_line_locks(signed_in, line):
    signed_in.cart.add_item(line("p1", size="M"))
    signed_in.cart.add_item(line("p2"))
    assert len(signed_in.cart._line_locks) == 2

    signed_in.cart.logout()
    assert signed_in.cart._line_locks == {}
