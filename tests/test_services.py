import pytest

from storefront_client.errors import InputValidationError
from storefront_client.models import Order, OrderStatus

ADDRESS = {
    "firstName": "Alice",
    "lastName": "Shopper",
    "street": "12 MG Road",
    "city": "Chennai",
    "state": "Tamil Nadu",
    "zipCode": "600001",
    "phone": "+91 98765 43210",
}


def test_address_book_crud(signed_in):
    book = signed_in.addresses
    first = book.create(ADDRESS)
    second = book.create(dict(ADDRESS, street="1 Beach Rd", isDefault=True))

    addresses = book.list()
    assert [a.isDefault for a in addresses] == [False, True]
    assert book.default().id == second.id

    updated = book.update(first.id, dict(ADDRESS, city="Madurai"))
    assert updated.city == "Madurai"

    assert book.delete(second.id)
    assert [a.id for a in book.list()] == [first.id]


def test_address_validation_happens_before_network(signed_in, backend):
    with pytest.raises(InputValidationError) as exc_info:
        signed_in.addresses.create(dict(ADDRESS, street="", phone="1"))
    assert set(exc_info.value.field_errors) == {"street", "phone"}
    assert backend.request_count("POST", "/users/addresses") == 0


def test_delete_unknown_address_reports(signed_in, notifier):
    assert not signed_in.addresses.delete("addr_404")
    assert notifier.last.message == "Address not found"


def test_orders_list_get_and_cancel(signed_in, backend, line):
    signed_in.addresses.create(ADDRESS)
    assert signed_in.cart.add_item(line("p1"))
    orchestrator = signed_in.checkout()
    orchestrator.start()
    orchestrator.place_order("pm_card_decline")

    orders = signed_in.orders.list()
    assert [o.id for o in orders] == [orchestrator.order_id]

    order = signed_in.orders.get(orchestrator.order_id)
    assert order.orderStatus == OrderStatus.PENDING
    cancelled = signed_in.orders.cancel(order)
    assert cancelled.orderStatus == OrderStatus.CANCELLED
    assert backend.orders[order.id]["orderStatus"] == "CANCELLED"


def test_cancel_shipped_order_is_not_sent(signed_in, backend, notifier):
    shipped = Order(id="ord_9", orderStatus="SHIPPED")
    assert signed_in.orders.cancel(shipped) is None
    assert backend.request_count("PUT", "/orders/ord_9/cancel") == 0
    assert notifier.last.level == "error"


def test_wishlist_toggle_and_duplicate(signed_in, notifier):
    wishlist = signed_in.wishlist
    assert wishlist.toggle("p1")
    assert [p["id"] for p in wishlist.list()] == ["p1"]

    assert not wishlist.add("p1")
    assert notifier.last.message == "Product already in wishlist"

    assert wishlist.toggle("p1")
    assert wishlist.list() == []


def test_catalog(storefront):
    page = storefront.catalog.list_products(search="shirt")
    assert [p["id"] for p in page["products"]] == ["p1"]
    assert storefront.catalog.get_product("p2")["name"] == "Denim Jeans"
    assert storefront.catalog.get_product("nope") is None


def test_profile_update_mirrors_into_auth_store(signed_in):
    assert signed_in.profile.update({"name": "Alice Cooper", "phone": "12345"})
    assert signed_in.auth.user.name == "Alice Cooper"
    assert signed_in.profile.get()["phone"] == "12345"


def test_change_password(signed_in, notifier):
    with pytest.raises(InputValidationError):
        signed_in.profile.change_password("secret123", "123")
    assert not signed_in.profile.change_password("wrong", "newsecret")
    assert notifier.last.message == "Current password is incorrect"
    assert signed_in.profile.change_password("secret123", "newsecret")


def test_admin_requires_role(signed_in, notifier):
    assert signed_in.admin.stats() is None
    assert notifier.last.message == "Admin access required"
    # a 403 is not a session problem
    assert signed_in.auth.is_authenticated


def test_admin_operations(storefront, backend):
    storefront.session.sign_in("admin@example.com", "admin123")
    admin = storefront.admin

    assert admin.stats()["totalProducts"] == 3
    assert len(admin.list_users(role="USER")["users"]) == 2
    assert admin.get_user("u1")["email"] == "alice@example.com"
    assert admin.update_user_role("u2", "ADMIN")["role"] == "ADMIN"
    with pytest.raises(InputValidationError):
        admin.update_user_role("u2", "ROOT")

    assert admin.update_product("p3", {"stock": 20})["product"]["stock"] == 20
    assert admin.delete_product("p3")
    assert "p3" not in backend.products

    assert admin.delete_user("u2")
    assert not admin.delete_user("admin")

    order_id = "ord_77"
    backend.orders[order_id] = {"id": order_id, "userId": "u1", "items": [], "orderStatus": "PROCESSING",
                                "paymentStatus": "PAID", "total": 10.0}
    assert admin.update_order_status(order_id, "SHIPPED").orderStatus == OrderStatus.SHIPPED
    assert [o["id"] for o in admin.list_orders(status="SHIPPED")["orders"]] == [order_id]

