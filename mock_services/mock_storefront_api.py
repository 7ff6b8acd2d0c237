"""
mock_storefront_api.py — Mock Implementation of the Storefront Backend (REST API)

This module provides a simulated storefront backend for running the client
locally and for tests. All data lives in memory (MockStore). Responses follow
the backend envelope: ``{"success": true, "data": {...}}`` on success and
``{"success": false, "message": "..."}`` on errors.

Simulation Scenarios:
    • Bearer-token sessions; revoke_token() turns a session into a 401
    • Stock checks on cart and order creation (HTTP 400)
    • Payment intents idempotent per order, verified against the processor ledger
    • fail_next(method, path, status) injects one failure for the next matching request

Port:
    Default: 5000 (HTTP), routes mounted under /api when run directly
"""

import itertools
import logging
import secrets
import threading
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from mock_services.mock_payment_processor import PaymentIntentLedger

logging.basicConfig(level=logging.INFO)

FREE_SHIPPING_THRESHOLD = 1000
SHIPPING_FLAT_RATE = 50
TAX_RATE = 0.18


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    phone: Optional[str] = None


class CartAddRequest(BaseModel):
    productId: str
    quantity: int = 1
    size: Optional[str] = None
    color: Optional[str] = None


class CartUpdateRequest(BaseModel):
    quantity: int


class OrderItemRequest(BaseModel):
    productId: str
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest]
    shippingAddress: dict
    paymentMethod: str = "CARD"


class CreateIntentRequest(BaseModel):
    orderId: str


class VerifyRequest(BaseModel):
    paymentIntentId: str
    orderId: str


class StatusRequest(BaseModel):
    status: str


class RoleRequest(BaseModel):
    role: str


class PasswordRequest(BaseModel):
    currentPassword: str
    newPassword: str


def ok(data=None):
    return {"success": True, "data": data or {}}


class MockStore:
    """In-memory backend state. Seeded with three users (one admin) and three products."""

    def __init__(self, ledger: Optional[PaymentIntentLedger] = None):
        self.ledger = ledger or PaymentIntentLedger()
        self.lock = threading.RLock()
        self._ids = itertools.count(1)
        self.users = {}
        self.tokens = {}
        self.products = {}
        self.carts = {}
        self.orders = {}
        self.addresses = {}
        self.wishlists = {}
        self.intent_by_order = {}
        self.requests = []
        self.failures = {}

        self.add_user("u1", "Alice Shopper", "alice@example.com", "secret123")
        self.add_user("u2", "Bob Buyer", "bob@example.com", "secret123")
        self.add_user("admin", "Store Admin", "admin@example.com", "admin123", role="ADMIN")
        self.add_product("p1", "Linen Shirt", 1299.0, stock=10)
        self.add_product("p2", "Denim Jeans", 1999.0, stock=5)
        self.add_product("p3", "Cotton Tee", 499.0, stock=2)

    def next_id(self, prefix):
        return f"{prefix}_{next(self._ids)}"

    def add_user(self, user_id, name, email, password, role="USER"):
        self.users[user_id] = {"id": user_id, "name": name, "email": email, "role": role, "password": password}
        self.carts.setdefault(user_id, [])

    def add_product(self, product_id, name, price, stock, images=None):
        self.products[product_id] = {
            "id": product_id,
            "name": name,
            "price": price,
            "stock": stock,
            "images": images or [f"https://cdn.example.com/{product_id}.jpg"],
            "slug": name.lower().replace(" ", "-"),
            "featured": False,
        }

    def add_cart_line(self, user_id, product_id, quantity, size=None, color=None):
        line = {"id": self.next_id("ci"), "productId": product_id, "quantity": quantity, "size": size, "color": color}
        self.carts.setdefault(user_id, []).append(line)
        return line

    def issue_token(self, user_id):
        token = secrets.token_hex(16)
        self.tokens[token] = user_id
        return token

    def revoke_token(self, token):
        self.tokens.pop(token, None)

    def fail_next(self, method, path, status=500, message="Injected failure"):
        self.failures[(method.upper(), path)] = (status, message)

    def request_count(self, method, path):
        return sum(1 for r in self.requests if r == (method.upper(), path))

    def public_user(self, user):
        return {k: v for k, v in user.items() if k != "password"}

    def cart_payload(self, user_id):
        items = []
        for line in self.carts.get(user_id, []):
            items.append({
                "id": line["id"],
                "product": self.products[line["productId"]],
                "quantity": line["quantity"],
                "size": line["size"],
                "color": line["color"],
            })
        return {"cart": {"items": items}}


def create_app(store: Optional[MockStore] = None) -> FastAPI:
    app = FastAPI(title="Mock Storefront API")
    app.state.store = store or MockStore()

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request, exc):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})

    @app.middleware("http")
    async def record_and_inject(request, call_next):
        store = app.state.store
        key = (request.method, request.url.path)
        store.requests.append(key)
        failure = store.failures.pop(key, None)
        if failure is not None:
            status, message = failure
            return JSONResponse(status_code=status, content={"success": False, "message": message})
        return await call_next(request)

    def db() -> MockStore:
        return app.state.store

    def current_user(authorization: Optional[str] = Header(None), store: MockStore = Depends(db)):
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Authentication required")
        user_id = store.tokens.get(authorization[len("Bearer "):])
        if user_id is None or user_id not in store.users:
            raise HTTPException(status_code=401, detail="Session expired")
        return store.users[user_id]

    def admin_user(user=Depends(current_user)):
        if user["role"] != "ADMIN":
            raise HTTPException(status_code=403, detail="Admin access required")
        return user

    def session_payload(store, user):
        return ok({
            "user": store.public_user(user),
            "accessToken": store.issue_token(user["id"]),
            "refreshToken": secrets.token_hex(16),
        })

    # --- Auth ---

    @app.post("/auth/login")
    def login(body: LoginRequest, store: MockStore = Depends(db)):
        for user in store.users.values():
            if user["email"] == body.email and user["password"] == body.password:
                return session_payload(store, user)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    @app.post("/auth/register", status_code=201)
    def register(body: RegisterRequest, store: MockStore = Depends(db)):
        with store.lock:
            if any(u["email"] == body.email for u in store.users.values()):
                return JSONResponse(status_code=409, content={
                    "success": False,
                    "message": "Email already registered",
                    "errors": [{"field": "email", "message": "Email already registered"}],
                })
            user_id = store.next_id("u")
            store.add_user(user_id, body.name, body.email, body.password)
            return session_payload(store, store.users[user_id])

    # --- Catalog ---

    @app.get("/products")
    def list_products(page: int = 1, limit: int = 12, search: Optional[str] = None, store: MockStore = Depends(db)):
        products = list(store.products.values())
        if search:
            products = [p for p in products if search.lower() in p["name"].lower()]
        start = (page - 1) * limit
        return ok({"products": products[start:start + limit], "pagination": {"total": len(products), "page": page}})

    @app.get("/products/{product_id}")
    def get_product(product_id: str, store: MockStore = Depends(db)):
        if product_id not in store.products:
            raise HTTPException(status_code=404, detail="Product not found")
        return ok({"product": store.products[product_id]})

    # --- Cart ---

    @app.get("/cart")
    def get_cart(user=Depends(current_user), store: MockStore = Depends(db)):
        return ok(store.cart_payload(user["id"]))

    @app.post("/cart/add")
    def add_to_cart(body: CartAddRequest, user=Depends(current_user), store: MockStore = Depends(db)):
        with store.lock:
            product = store.products.get(body.productId)
            if product is None:
                raise HTTPException(status_code=404, detail="Product not found")
            lines = store.carts.setdefault(user["id"], [])
            for line in lines:
                if (line["productId"], line["size"], line["color"]) == (body.productId, body.size, body.color):
                    if line["quantity"] + body.quantity > product["stock"]:
                        raise HTTPException(status_code=400, detail="Insufficient stock")
                    line["quantity"] += body.quantity
                    break
            else:
                if body.quantity > product["stock"]:
                    raise HTTPException(status_code=400, detail="Insufficient stock")
                store.add_cart_line(user["id"], body.productId, body.quantity, body.size, body.color)
        return ok(store.cart_payload(user["id"]))

    @app.put("/cart/items/{item_id}")
    def update_cart_item(item_id: str, body: CartUpdateRequest, user=Depends(current_user),
                         store: MockStore = Depends(db)):
        with store.lock:
            for line in store.carts.get(user["id"], []):
                if line["id"] == item_id:
                    if body.quantity > store.products[line["productId"]]["stock"]:
                        raise HTTPException(status_code=400, detail="Insufficient stock")
                    line["quantity"] = body.quantity
                    return ok(store.cart_payload(user["id"]))
        raise HTTPException(status_code=404, detail="Cart item not found")

    @app.delete("/cart/items/{item_id}")
    def delete_cart_item(item_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        with store.lock:
            lines = store.carts.get(user["id"], [])
            remaining = [line for line in lines if line["id"] != item_id]
            if len(remaining) == len(lines):
                raise HTTPException(status_code=404, detail="Cart item not found")
            store.carts[user["id"]] = remaining
        return ok(store.cart_payload(user["id"]))

    @app.delete("/cart/clear")
    def clear_cart(user=Depends(current_user), store: MockStore = Depends(db)):
        store.carts[user["id"]] = []
        return ok(store.cart_payload(user["id"]))

    # --- Orders ---

    def owned_order(store, user, order_id):
        order = store.orders.get(order_id)
        if order is None or (order["userId"] != user["id"] and user["role"] != "ADMIN"):
            raise HTTPException(status_code=404, detail="Order not found")
        return order

    @app.post("/orders", status_code=201)
    def create_order(body: CreateOrderRequest, user=Depends(current_user), store: MockStore = Depends(db)):
        if not body.items:
            raise HTTPException(status_code=400, detail="Order has no items")
        with store.lock:
            subtotal = 0.0
            for item in body.items:
                product = store.products.get(item.productId)
                if product is None:
                    raise HTTPException(status_code=404, detail=f"Product {item.productId} not found")
                if item.quantity > product["stock"]:
                    raise HTTPException(status_code=400, detail=f"Insufficient stock for {product['name']}")
                subtotal += product["price"] * item.quantity
            shipping = 0.0 if subtotal >= FREE_SHIPPING_THRESHOLD else float(SHIPPING_FLAT_RATE)
            tax = round(subtotal * TAX_RATE, 2)
            order_id = store.next_id("ord")
            store.orders[order_id] = {
                "id": order_id,
                "userId": user["id"],
                "items": [item.model_dump() for item in body.items],
                "shippingAddress": body.shippingAddress,
                "paymentMethod": body.paymentMethod,
                "subtotal": round(subtotal, 2),
                "shipping": shipping,
                "tax": tax,
                "total": round(subtotal + shipping + tax, 2),
                "orderStatus": "PENDING",
                "paymentStatus": "PENDING",
            }
        return ok({"order": store.orders[order_id]})

    @app.get("/orders")
    def list_orders(user=Depends(current_user), store: MockStore = Depends(db)):
        return ok({"orders": [o for o in store.orders.values() if o["userId"] == user["id"]]})

    @app.get("/orders/{order_id}")
    def get_order(order_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        return ok({"order": owned_order(store, user, order_id)})

    @app.put("/orders/{order_id}/cancel")
    def cancel_order(order_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        order = owned_order(store, user, order_id)
        if order["orderStatus"] not in ("PENDING", "PROCESSING"):
            raise HTTPException(status_code=400, detail="Order can no longer be cancelled")
        order["orderStatus"] = "CANCELLED"
        return ok({"order": order})

    # --- Payment ---

    @app.post("/payment/create-intent")
    def create_intent(body: CreateIntentRequest, user=Depends(current_user), store: MockStore = Depends(db)):
        with store.lock:
            order = owned_order(store, user, body.orderId)
            if order["paymentStatus"] == "PAID":
                raise HTTPException(status_code=400, detail="Order is already paid")
            intent_id = store.intent_by_order.get(order["id"])
            intent = store.ledger.get(intent_id) if intent_id else None
            if intent is None:
                intent = store.ledger.create(order["id"], int(round(order["total"] * 100)))
                store.intent_by_order[order["id"]] = intent.id
        return ok({"clientSecret": intent.clientSecret, "paymentIntentId": intent.id})

    @app.post("/payment/verify")
    def verify_payment(body: VerifyRequest, user=Depends(current_user), store: MockStore = Depends(db)):
        order = owned_order(store, user, body.orderId)
        intent = store.ledger.get(body.paymentIntentId)
        if intent is None or intent.orderId != order["id"]:
            raise HTTPException(status_code=400, detail="Payment does not match order")
        if intent.status != "succeeded":
            order["paymentStatus"] = "FAILED"
            raise HTTPException(status_code=400, detail="Payment not completed")
        order["paymentStatus"] = "PAID"
        order["orderStatus"] = "PROCESSING"
        return ok({"order": order})

    # --- Account ---

    @app.get("/users/profile")
    def get_profile(user=Depends(current_user), store: MockStore = Depends(db)):
        return ok({"user": store.public_user(user)})

    @app.put("/users/profile")
    def update_profile(body: dict, user=Depends(current_user), store: MockStore = Depends(db)):
        for field in ("name", "phone", "firstName", "lastName"):
            if field in body:
                user[field] = body[field]
        return ok({"user": store.public_user(user)})

    @app.put("/users/change-password")
    def change_password(body: PasswordRequest, user=Depends(current_user)):
        if body.currentPassword != user["password"]:
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        user["password"] = body.newPassword
        return ok()

    @app.get("/users/addresses")
    def list_addresses(user=Depends(current_user), store: MockStore = Depends(db)):
        return ok({"addresses": store.addresses.get(user["id"], [])})

    def save_address(store, user, address):
        addresses = store.addresses.setdefault(user["id"], [])
        if address.get("isDefault") or not [a for a in addresses if a["id"] != address["id"]]:
            for other in addresses:
                other["isDefault"] = False
            address["isDefault"] = True
        return address

    @app.post("/users/addresses", status_code=201)
    def create_address(body: dict, user=Depends(current_user), store: MockStore = Depends(db)):
        with store.lock:
            address = dict(body, id=store.next_id("addr"))
            save_address(store, user, address)
            store.addresses[user["id"]].append(address)
        return ok({"address": address})

    @app.put("/users/addresses/{address_id}")
    def update_address(address_id: str, body: dict, user=Depends(current_user), store: MockStore = Depends(db)):
        with store.lock:
            for address in store.addresses.get(user["id"], []):
                if address["id"] == address_id:
                    address.update({k: v for k, v in body.items() if k != "id"})
                    save_address(store, user, address)
                    return ok({"address": address})
        raise HTTPException(status_code=404, detail="Address not found")

    @app.delete("/users/addresses/{address_id}")
    def delete_address(address_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        addresses = store.addresses.get(user["id"], [])
        remaining = [a for a in addresses if a["id"] != address_id]
        if len(remaining) == len(addresses):
            raise HTTPException(status_code=404, detail="Address not found")
        store.addresses[user["id"]] = remaining
        return ok()

    @app.get("/users/wishlist")
    def get_wishlist(user=Depends(current_user), store: MockStore = Depends(db)):
        ids = store.wishlists.get(user["id"], [])
        return ok({"wishlist": [store.products[p] for p in ids if p in store.products]})

    @app.post("/users/wishlist/{product_id}")
    def add_wishlist(product_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        if product_id not in store.products:
            raise HTTPException(status_code=404, detail="Product not found")
        ids = store.wishlists.setdefault(user["id"], [])
        if product_id in ids:
            raise HTTPException(status_code=409, detail="Product already in wishlist")
        ids.append(product_id)
        return ok()

    @app.delete("/users/wishlist/{product_id}")
    def remove_wishlist(product_id: str, user=Depends(current_user), store: MockStore = Depends(db)):
        ids = store.wishlists.get(user["id"], [])
        if product_id not in ids:
            raise HTTPException(status_code=404, detail="Product not in wishlist")
        ids.remove(product_id)
        return ok()

    # --- Admin ---

    @app.get("/admin/stats")
    def stats(admin=Depends(admin_user), store: MockStore = Depends(db)):
        paid = [o for o in store.orders.values() if o["paymentStatus"] == "PAID"]
        return ok({"stats": {
            "totalUsers": len(store.users),
            "totalProducts": len(store.products),
            "totalOrders": len(store.orders),
            "totalRevenue": round(sum(o["total"] for o in paid), 2),
        }})

    @app.get("/admin/products")
    def admin_products(admin=Depends(admin_user), store: MockStore = Depends(db)):
        return ok({"products": list(store.products.values())})

    @app.put("/admin/products/{product_id}")
    def admin_update_product(product_id: str, body: dict, admin=Depends(admin_user), store: MockStore = Depends(db)):
        product = store.products.get(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        product.update({k: v for k, v in body.items() if k != "id"})
        return ok({"product": product})

    @app.delete("/admin/products/{product_id}")
    def admin_delete_product(product_id: str, admin=Depends(admin_user), store: MockStore = Depends(db)):
        if store.products.pop(product_id, None) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return ok()

    @app.get("/admin/orders")
    def admin_orders(status: Optional[str] = None, admin=Depends(admin_user), store: MockStore = Depends(db)):
        orders = [o for o in store.orders.values() if status is None or o["orderStatus"] == status]
        return ok({"orders": orders})

    @app.put("/admin/orders/{order_id}/status")
    def admin_order_status(order_id: str, body: StatusRequest, admin=Depends(admin_user),
                           store: MockStore = Depends(db)):
        order = store.orders.get(order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        order["orderStatus"] = body.status
        return ok({"order": order})

    @app.get("/admin/users")
    def admin_users(role: Optional[str] = None, admin=Depends(admin_user), store: MockStore = Depends(db)):
        users = [store.public_user(u) for u in store.users.values() if role is None or u["role"] == role]
        return ok({"users": users})

    @app.get("/admin/users/{user_id}")
    def admin_user_detail(user_id: str, admin=Depends(admin_user), store: MockStore = Depends(db)):
        if user_id not in store.users:
            raise HTTPException(status_code=404, detail="User not found")
        return ok({"user": store.public_user(store.users[user_id])})

    @app.put("/admin/users/{user_id}/role")
    def admin_user_role(user_id: str, body: RoleRequest, admin=Depends(admin_user), store: MockStore = Depends(db)):
        if user_id not in store.users:
            raise HTTPException(status_code=404, detail="User not found")
        store.users[user_id]["role"] = body.role
        return ok({"user": store.public_user(store.users[user_id])})

    @app.delete("/admin/users/{user_id}")
    def admin_delete_user(user_id: str, admin=Depends(admin_user), store: MockStore = Depends(db)):
        if user_id == admin["id"]:
            raise HTTPException(status_code=400, detail="You cannot delete your own account")
        if store.users.pop(user_id, None) is None:
            raise HTTPException(status_code=404, detail="User not found")
        return ok()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    root = FastAPI(title="Mock Storefront")
    root.mount("/api", app)
    uvicorn.run(root, host="0.0.0.0", port=5000)
