"""
storefront.py — Composition Root

Builds one isolated set of collaborators (HTTP clients, stores, session
coordinator, resource services) and hands out checkout orchestrators bound to
them. Nothing here is a module-level singleton; tests build as many
independent storefronts as they need.
"""

import logging

from .auth_store import AuthStore
from .cart import CartStore, CartSyncEngine
from .clients import ApiClient, PaymentProcessorClient
from .config import AUTH_STORAGE_KEY, CART_STORAGE_KEY, STOREFRONT_ORIGIN, STOREFRONT_STATE_DIR
from .notifications import Notifier
from .services import (
    AddressBook,
    AdminService,
    CatalogService,
    OrderService,
    ProfileService,
    WishlistService,
)
from .session import AuthSessionManager
from .storage import JsonFileStorage
from .workflow import CheckoutOrchestrator

log = logging.getLogger(__name__)


class Storefront:
    """
    Args:
        storage: Durable storage backend; a JsonFileStorage in STOREFRONT_STATE_DIR by default.
        api (ApiClient | None): Backend client.
        processor (PaymentProcessorClient | None): Payment processor client.
        notifier (Notifier | None): Notification sink.
        origin (str): Front-end origin used for payment return URLs.
        restore (bool): Re-attach the persisted session (syncs the cart) on construction.
    """

    def __init__(self, storage=None, api=None, processor=None, notifier=None,
                 origin: str = STOREFRONT_ORIGIN, restore: bool = True):
        self.storage = storage if storage is not None else JsonFileStorage(STOREFRONT_STATE_DIR)
        self.notifier = notifier or Notifier()
        self.api = api or ApiClient()
        self.processor = processor or PaymentProcessorClient()
        self.origin = origin

        self.auth = AuthStore(self.storage, AUTH_STORAGE_KEY)
        self.cart = CartSyncEngine(self.api, CartStore(self.storage, CART_STORAGE_KEY), self.notifier)
        self.session = AuthSessionManager(self.api, self.auth, self.cart, self.notifier)

        self.addresses = AddressBook(self.api, self.notifier)
        self.orders = OrderService(self.api, self.notifier)
        self.catalog = CatalogService(self.api, self.notifier)
        self.wishlist = WishlistService(self.api, self.notifier)
        self.profile = ProfileService(self.api, self.auth, self.notifier)
        self.admin = AdminService(self.api, self.notifier)

        if restore:
            self.session.restore()

    def checkout(self) -> CheckoutOrchestrator:
        """A fresh orchestrator for one checkout attempt."""
        return CheckoutOrchestrator(
            api=self.api,
            auth=self.auth,
            cart=self.cart,
            processor=self.processor,
            address_book=self.addresses,
            notifier=self.notifier,
            origin=self.origin,
        )

    def close(self):
        self.api.close()
        self.processor.close()
