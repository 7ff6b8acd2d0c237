"""
services.py — Resource Services over the Storefront REST API

Thin wrappers around the backend resources used by the account, catalog and
admin screens. Each call reports failures through the notifier and returns
None (reads) or False (writes) instead of raising.

Services:
    - AddressBook:      /users/addresses
    - OrderService:     /orders
    - CatalogService:   /products
    - WishlistService:  /users/wishlist
    - ProfileService:   /users/profile, /users/change-password
    - AdminService:     /admin/*
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from .errors import ApiError, InputValidationError
from .models import Address, AddressInput, Order, OrderStatus

log = logging.getLogger(__name__)


def _validated_address(form) -> AddressInput:
    if isinstance(form, AddressInput):
        return form
    try:
        return AddressInput.model_validate(form)
    except ValidationError as e:
        raise InputValidationError.from_pydantic(e) from e


class AddressBook:
    def __init__(self, api, notifier):
        self.api = api
        self.notifier = notifier

    def list(self) -> Optional[List[Address]]:
        try:
            data = self.api.get("/users/addresses")
        except ApiError as e:
            self.notifier.report(e, "Failed to load addresses")
            return None
        return [Address.model_validate(a) for a in data.get("addresses", [])]

    def default(self, addresses=None) -> Optional[Address]:
        """The default address, else the first one, else None."""
        if addresses is None:
            addresses = self.list() or []
        for address in addresses:
            if address.isDefault:
                return address
        return addresses[0] if addresses else None

    def create(self, form) -> Optional[Address]:
        """
        Saves a new address.

        Raises:
            InputValidationError: When the form is incomplete; nothing is sent.
        """
        address = _validated_address(form)
        try:
            data = self.api.post("/users/addresses", json=address.model_dump())
        except ApiError as e:
            self.notifier.report(e, "Failed to add address")
            return None
        self.notifier.success("Address added successfully")
        return Address.model_validate(data["address"])

    def update(self, address_id: str, form) -> Optional[Address]:
        address = _validated_address(form)
        try:
            data = self.api.put(f"/users/addresses/{address_id}", json=address.model_dump())
        except ApiError as e:
            self.notifier.report(e, "Failed to update address")
            return None
        self.notifier.success("Address updated successfully")
        return Address.model_validate(data["address"])

    def delete(self, address_id: str) -> bool:
        try:
            self.api.delete(f"/users/addresses/{address_id}")
        except ApiError as e:
            self.notifier.report(e, "Failed to delete address")
            return False
        self.notifier.success("Address deleted")
        return True


class OrderService:
    def __init__(self, api, notifier):
        self.api = api
        self.notifier = notifier

    def list(self) -> Optional[List[Order]]:
        try:
            data = self.api.get("/orders")
        except ApiError as e:
            self.notifier.report(e, "Failed to load orders")
            return None
        return [Order.model_validate(o) for o in data.get("orders", [])]

    def get(self, order_id: str) -> Optional[Order]:
        try:
            data = self.api.get(f"/orders/{order_id}")
        except ApiError as e:
            self.notifier.report(e, "Failed to load order details")
            return None
        return Order.model_validate(data["order"])

    def cancel(self, order: Order) -> Optional[Order]:
        """Requests the cancel transition. Orders past PROCESSING are not sent."""
        if not order.is_cancellable:
            self.notifier.error(f"Order cannot be cancelled once {order.orderStatus.value.lower()}")
            return None
        try:
            data = self.api.put(f"/orders/{order.id}/cancel")
        except ApiError as e:
            self.notifier.report(e, "Failed to cancel order")
            return None
        log.info(f"[Order: {order.id}] Cancelled by customer.")
        self.notifier.success("Order cancelled successfully")
        return Order.model_validate(data["order"])


class CatalogService:
    def __init__(self, api, notifier):
        self.api = api
        self.notifier = notifier

    def list_products(self, category=None, search=None, min_price=None, max_price=None,
                      sort="createdAt", order="desc", page=1, limit=12, featured=None) -> Optional[dict]:
        params = {
            "category": category,
            "search": search,
            "minPrice": min_price,
            "maxPrice": max_price,
            "sort": sort,
            "order": order,
            "page": page,
            "limit": limit,
            "featured": featured,
        }
        try:
            return self.api.get("/products", params=params)
        except ApiError as e:
            self.notifier.report(e, "Failed to load products")
            return None

    def get_product(self, product_id: str) -> Optional[dict]:
        try:
            return self.api.get(f"/products/{product_id}").get("product")
        except ApiError as e:
            self.notifier.report(e, "Product not found")
            return None


class WishlistService:
    def __init__(self, api, notifier):
        self.api = api
        self.notifier = notifier
        self.product_ids = set()

    def list(self) -> Optional[list]:
        try:
            data = self.api.get("/users/wishlist")
        except ApiError as e:
            self.notifier.report(e, "Failed to load wishlist")
            return None
        products = data.get("wishlist", [])
        self.product_ids = {str(p["id"]) for p in products}
        return products

    def add(self, product_id: str) -> bool:
        try:
            self.api.post(f"/users/wishlist/{product_id}")
        except ApiError as e:
            self.notifier.report(e, "Failed to add to wishlist")
            return False
        self.product_ids.add(product_id)
        self.notifier.success("Added to wishlist")
        return True

    def remove(self, product_id: str) -> bool:
        try:
            self.api.delete(f"/users/wishlist/{product_id}")
        except ApiError as e:
            self.notifier.report(e, "Failed to remove from wishlist")
            return False
        self.product_ids.discard(product_id)
        self.notifier.success("Removed from wishlist")
        return True

    def toggle(self, product_id: str) -> bool:
        if product_id in self.product_ids:
            return self.remove(product_id)
        return self.add(product_id)


class ProfileService:
    def __init__(self, api, auth, notifier):
        self.api = api
        self.auth = auth
        self.notifier = notifier

    def get(self) -> Optional[dict]:
        try:
            return self.api.get("/users/profile").get("user")
        except ApiError as e:
            self.notifier.report(e, "Failed to load profile")
            return None

    def update(self, partial: dict) -> bool:
        """Saves profile fields and mirrors the server's user record into the auth store."""
        try:
            data = self.api.put("/users/profile", json=partial)
        except ApiError as e:
            self.notifier.report(e, "Failed to update profile")
            return False
        self.auth.update_user(data.get("user") or partial)
        self.notifier.success("Profile updated successfully")
        return True

    def change_password(self, current_password: str, new_password: str) -> bool:
        if len(new_password) < 6:
            raise InputValidationError({"newPassword": "Password must be at least 6 characters"})
        try:
            self.api.put("/users/change-password", json={
                "currentPassword": current_password,
                "newPassword": new_password,
            })
        except ApiError as e:
            self.notifier.report(e, "Failed to change password")
            return False
        self.notifier.success("Password changed successfully")
        return True


class AdminService:
    """
    Back-office operations. The backend enforces the ADMIN role; a 403 is
    reported like any other failure.
    """

    def __init__(self, api, notifier):
        self.api = api
        self.notifier = notifier

    def _read(self, path, fallback, params=None):
        try:
            return self.api.get(path, params=params)
        except ApiError as e:
            self.notifier.report(e, fallback)
            return None

    def _write(self, method, path, success, fallback, json=None):
        try:
            if method == "DELETE":
                data = self.api.delete(path)
            else:
                data = self.api.put(path, json=json)
        except ApiError as e:
            self.notifier.report(e, fallback)
            return None
        self.notifier.success(success)
        return data

    def stats(self):
        data = self._read("/admin/stats", "Failed to load stats")
        return data.get("stats") if data is not None else None

    def list_products(self, page=1, limit=100):
        return self._read("/admin/products", "Failed to load products", params={"page": page, "limit": limit})

    def list_orders(self, status=None, page=1, limit=10):
        if status is not None:
            status = OrderStatus(status).value
        return self._read("/admin/orders", "Failed to load orders",
                          params={"status": status, "page": page, "limit": limit})

    def list_users(self, role=None, search=None, page=1, limit=10):
        return self._read("/admin/users", "Failed to load users",
                          params={"role": role, "search": search, "page": page, "limit": limit})

    def get_user(self, user_id: str):
        data = self._read(f"/admin/users/{user_id}", "Failed to load user details")
        return data.get("user") if data is not None else None

    def update_product(self, product_id: str, fields: dict):
        return self._write("PUT", f"/admin/products/{product_id}", "Product updated successfully",
                           "Failed to update product", json=fields)

    def delete_product(self, product_id: str) -> bool:
        return self._write("DELETE", f"/admin/products/{product_id}", "Product deleted successfully",
                           "Failed to delete product") is not None

    def update_order_status(self, order_id: str, status) -> Optional[Order]:
        status = OrderStatus(status)
        data = self._write("PUT", f"/admin/orders/{order_id}/status", "Order status updated successfully",
                           "Failed to update order status", json={"status": status.value})
        if data is None:
            return None
        log.info(f"[Order: {order_id}] Status set to {status.value} by admin.")
        return Order.model_validate(data["order"])

    def update_user_role(self, user_id: str, role: str):
        if role not in ("USER", "ADMIN"):
            raise InputValidationError({"role": "Role must be USER or ADMIN"})
        data = self._write("PUT", f"/admin/users/{user_id}/role", "User role updated successfully",
                           "Failed to update user role", json={"role": role})
        return data.get("user") if data is not None else None

    def delete_user(self, user_id: str) -> bool:
        return self._write("DELETE", f"/admin/users/{user_id}", "User deleted successfully",
                           "Failed to delete user") is not None
