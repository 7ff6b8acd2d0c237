"""
cart.py — Cart Store and Cart Synchronization Engine

The cart has two possible backing stores:
    - guest: lines live only on the client (CartStore, persisted locally)
    - authenticated: lines live on the backend; the client holds a read-only
      copy that is replaced wholesale after every change (CartSyncEngine)

CartStore implements the local line-item rules (merge by identity key, totals).
CartSyncEngine is the only component that moves the cart between the two
modes. The server is the source of truth once a user is known: on login the
guest lines are discarded, not merged, and every authenticated mutation is
followed by a full re-fetch instead of an optimistic local update.

Concurrency:
    - sync_cart runs under one re-entrant lock, so concurrent calls serialize
      and the later ones see the cart already initialized for that user.
    - authenticated mutations of the same line (same LineKey) are serialized
      by a per-key lock; mutations of different lines may interleave.
"""

import logging
import threading
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from .config import CART_STORAGE_KEY, FREE_SHIPPING_THRESHOLD, SHIPPING_FLAT_RATE, TAX_RATE
from .errors import ApiError, AuthorizationError, TransientError
from .models import CartLineItem, CartSummary, LineKey

log = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CartState(BaseModel):
    """Persisted fields of the cart store."""
    items: List[CartLineItem] = Field(default_factory=list)
    userId: Optional[str] = None


def _key(product_id, size=None, color=None) -> LineKey:
    return LineKey(productId=product_id, size=size, color=color)


class CartStore:
    """
    Durable cart state with the pure, network-free line-item rules used for
    guest carts.

    Args:
        storage: A storage backend (see storage.py).
        storage_key (str): Storage name of the cart record.
    """

    def __init__(self, storage, storage_key: str = CART_STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._lock = threading.RLock()

        record = storage.load(storage_key)
        self._state = CartState.model_validate(record) if record else CartState()

    def _commit(self, items, user_id):
        # Callers hold self._lock.
        self._state = CartState(items=list(items), userId=user_id)
        self.storage.save(self.storage_key, self._state.model_dump(mode="json"))

    @property
    def items(self) -> List[CartLineItem]:
        return list(self._state.items)

    @property
    def user_id(self) -> Optional[str]:
        return self._state.userId

    def find(self, key: LineKey) -> Optional[CartLineItem]:
        for line in self._state.items:
            if line.key == key:
                return line
        return None

    def add_item(self, item: CartLineItem):
        """Merges into the line with the same key, or appends a new line."""
        with self._lock:
            items = self._state.items
            existing = self.find(item.key)
            if existing is not None:
                merged = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
                items = [merged if line.key == item.key else line for line in items]
            else:
                items = items + [item]
            self._commit(items, self._state.userId)

    def remove_item(self, product_id: str, size: Optional[str] = None, color: Optional[str] = None):
        key = _key(product_id, size, color)
        with self._lock:
            items = [line for line in self._state.items if line.key != key]
            if len(items) != len(self._state.items):
                self._commit(items, self._state.userId)

    def update_quantity(self, product_id: str, quantity: int, size: Optional[str] = None,
                        color: Optional[str] = None):
        """Sets the quantity exactly; zero or less removes the line. Stock is not enforced here."""
        if quantity <= 0:
            return self.remove_item(product_id, size, color)
        key = _key(product_id, size, color)
        with self._lock:
            if self.find(key) is None:
                return
            items = [line.model_copy(update={"quantity": quantity}) if line.key == key else line
                     for line in self._state.items]
            self._commit(items, self._state.userId)

    def clear_cart(self):
        with self._lock:
            self._commit([], self._state.userId)

    def replace(self, items, user_id: Optional[str]):
        """Replaces every line and the owner in one step."""
        with self._lock:
            self._commit(items, user_id)

    def reset(self):
        """Empty guest cart."""
        self.replace([], None)

    def get_total(self) -> Decimal:
        return sum((line.line_total for line in self._state.items), Decimal("0"))

    def get_item_count(self) -> int:
        return sum(line.quantity for line in self._state.items)

    def get_cart_summary(self) -> CartSummary:
        subtotal = self.get_total()
        shipping = Decimal("0") if subtotal >= FREE_SHIPPING_THRESHOLD else SHIPPING_FLAT_RATE
        tax = subtotal * TAX_RATE
        return CartSummary(
            subtotal=subtotal.quantize(CENT, ROUND_HALF_UP),
            shippingCost=shipping.quantize(CENT, ROUND_HALF_UP),
            tax=tax.quantize(CENT, ROUND_HALF_UP),
            total=(subtotal + shipping + tax).quantize(CENT, ROUND_HALF_UP),
            itemCount=self.get_item_count(),
        )


class CartSyncEngine:
    """
    Reconciles the local cart with the server cart across login and logout.

    The engine is guest-mode whenever ``user_id`` is None; every operation then
    falls back to the CartStore rules. With a user, each operation is sent to
    the backend first and the whole cart is re-fetched on success.

    Failures are reported through the notifier and never raised: a failed
    mutation leaves the cart unchanged, a failed sync leaves it empty. A
    mutation whose follow-up re-fetch fails returns False. Malformed cart
    payloads count as a failed sync.
    """

    def __init__(self, api, store: CartStore, notifier):
        self.api = api
        self.store = store
        self.notifier = notifier
        self.initialized = False
        self.loading = False
        self._sync_lock = threading.RLock()
        self._line_locks = {}
        self._line_locks_guard = threading.Lock()

    # -- state -------------------------------------------------------------

    @property
    def items(self) -> List[CartLineItem]:
        return self.store.items

    @property
    def user_id(self) -> Optional[str]:
        return self.store.user_id

    @property
    def is_empty(self) -> bool:
        return not self.store.items

    def get_total(self) -> Decimal:
        return self.store.get_total()

    def get_item_count(self) -> int:
        return self.store.get_item_count()

    def get_cart_summary(self) -> CartSummary:
        return self.store.get_cart_summary()

    def _prefix(self, user_id=None):
        return f"[Cart: {user_id or self.user_id or 'guest'}]"

    def _line_lock(self, key: LineKey):
        with self._line_locks_guard:
            lock = self._line_locks.get(key)
            if lock is None:
                lock = self._line_locks[key] = threading.Lock()
            return lock

    # -- synchronization ---------------------------------------------------

    def sync_cart(self, user_id: Optional[str]):
        """
        Makes the local cart reflect the cart of ``user_id``.

        - No user: reset to an empty guest cart.
        - Already initialized for the same user: no-op, no network call.
        - Otherwise: fetch the server cart and replace the local lines with it.

        On a 401 the cart falls back to an empty guest cart. On any other failure
        the lines are cleared but the cart counts as initialized for that user,
        so repeated calls do not keep hitting a failing backend.
        """
        with self._sync_lock:
            if not user_id:
                self.store.reset()
                self.initialized = True
                return

            if self.initialized and self.user_id == user_id:
                return

            self._fetch(user_id)

    def refresh(self) -> bool:
        """Forces a re-fetch of the server cart for the current user."""
        with self._sync_lock:
            if not self.user_id:
                return True
            return self._fetch(self.user_id)

    def _fetch(self, user_id: str) -> bool:
        # Callers hold self._sync_lock.
        prefix = self._prefix(user_id)
        self.loading = True
        try:
            data = self.api.get("/cart")
            try:
                entries = (data.get("cart") or {}).get("items") or []
                items = [CartLineItem.from_backend(entry) for entry in entries]
            except (ValidationError, KeyError, TypeError, AttributeError) as e:
                raise TransientError(f"Unexpected cart data from server: {e}") from e
            self.store.replace(items, user_id)
            self.initialized = True
            log.info(f"{prefix} Synced {len(items)} line(s) from server.")
            return True
        except AuthorizationError:
            log.warning(f"{prefix} Sync rejected (401). Falling back to guest cart.")
            self.store.reset()
            self.initialized = True
            return False
        except ApiError as e:
            log.error(f"{prefix} Sync failed: {e.message}. Clearing local lines.")
            self.store.replace([], user_id)
            self.initialized = True
            self.notifier.report(e, "Failed to load your cart")
            return False
        finally:
            self.loading = False

    def _server_line_id(self, key: LineKey):
        data = self.api.get("/cart")
        try:
            for entry in (data.get("cart") or {}).get("items") or []:
                product = entry.get("product") or {}
                entry_key = LineKey(productId=str(product.get("id")), size=entry.get("size"), color=entry.get("color"))
                if entry_key == key:
                    return entry.get("id")
        except (ValidationError, TypeError, AttributeError) as e:
            raise TransientError(f"Unexpected cart data from server: {e}") from e
        return None

    # -- mutations ---------------------------------------------------------

    def add_item(self, item: CartLineItem) -> bool:
        """Adds ``item.quantity`` units of the line, merging with an existing line."""
        user_id = self.user_id
        if not user_id:
            self.store.add_item(item)
            self.notifier.success("Added to cart!")
            return True

        with self._line_lock(item.key):
            try:
                self.api.post("/cart/add", json={
                    "productId": item.productId,
                    "quantity": item.quantity,
                    "size": item.size,
                    "color": item.color,
                })
            except ApiError as e:
                log.warning(f"{self._prefix(user_id)} Add of {item.key} failed: {e.message}")
                self.notifier.report(e, "Failed to add to cart")
                return False
            if not self.refresh():
                return False
        self.notifier.success("Added to cart!")
        return True

    def update_quantity(self, product_id: str, quantity: int, size: Optional[str] = None,
                        color: Optional[str] = None) -> bool:
        """Sets a line's quantity; a quantity below one removes the line."""
        if quantity < 1:
            return self.remove_item(product_id, size, color)

        user_id = self.user_id
        if not user_id:
            self.store.update_quantity(product_id, quantity, size, color)
            return True

        key = _key(product_id, size, color)
        with self._line_lock(key):
            try:
                line_id = self._server_line_id(key)
                if line_id is None:
                    log.info(f"{self._prefix(user_id)} {key} not in server cart, nothing to update.")
                    return False
                self.api.put(f"/cart/items/{line_id}", json={"quantity": quantity})
            except ApiError as e:
                log.warning(f"{self._prefix(user_id)} Update of {key} failed: {e.message}")
                self.notifier.report(e, "Failed to update quantity")
                return False
            if not self.refresh():
                return False
        return True

    def remove_item(self, product_id: str, size: Optional[str] = None, color: Optional[str] = None) -> bool:
        user_id = self.user_id
        if not user_id:
            self.store.remove_item(product_id, size, color)
            self.notifier.success("Removed from cart")
            return True

        key = _key(product_id, size, color)
        with self._line_lock(key):
            try:
                line_id = self._server_line_id(key)
                if line_id is None:
                    log.info(f"{self._prefix(user_id)} {key} not in server cart, nothing to remove.")
                    return False
                self.api.delete(f"/cart/items/{line_id}")
            except ApiError as e:
                log.warning(f"{self._prefix(user_id)} Removal of {key} failed: {e.message}")
                self.notifier.report(e, "Failed to remove item")
                return False
            if not self.refresh():
                return False
        self.notifier.success("Removed from cart")
        return True

    def clear_cart(self):
        """
        Empties the cart. With a user the server cart is cleared too; local
        lines are emptied even when that call fails, the next sync reconciles.
        """
        user_id = self.user_id
        if user_id:
            try:
                self.api.delete("/cart/clear")
            except ApiError as e:
                log.warning(f"{self._prefix(user_id)} Server clear failed: {e.message}. Clearing locally.")
                self.notifier.report(e, "Failed to clear cart")
        self.store.clear_cart()

    def logout(self):
        """Back to an empty, uninitialized guest cart."""
        self.store.reset()
        self.initialized = False
        with self._line_locks_guard:
            self._line_locks.clear()
        log.info("[Cart: guest] Cart reset on logout.")
