"""
workflow.py — Checkout Orchestration

This module drives the checkout sequence that turns a cart into a paid order.
It coordinates the backend and the payment processor in the correct order.

Workflow Overview:
1. Guard: authenticated session and a non-empty cart
2. Address selection from the account's address book
3. Order creation on the backend (never retried automatically)
4. Payment-intent creation on the backend (client secret for the processor)
5. Payment collection through the processor's client-side confirmation
6. Payment verification on the backend (the only proof of payment)
7. Terminal state: SUCCESS (cart cleared, go to the order) or FAILURE (retry / back to cart)
"""

import logging
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from .config import STOREFRONT_ORIGIN
from .errors import ApiError, PaymentError
from .models import Address, Navigation, OrderLine

log = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    IDLE = "IDLE"
    ADDRESS_SELECTION = "ADDRESS_SELECTION"
    ORDER_CREATION = "ORDER_CREATION"
    PAYMENT_INTENT_CREATION = "PAYMENT_INTENT_CREATION"
    PAYMENT_COLLECTION = "PAYMENT_COLLECTION"
    PAYMENT_VERIFICATION = "PAYMENT_VERIFICATION"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class CheckoutOrchestrator:
    """
    Executes the checkout workflow for the current session and cart.

    One instance covers one checkout attempt. In-memory state (selected
    address, order id, client secret) is lost if the process restarts during
    an off-site payment redirect; resume_from_redirect rebuilds what step 6
    needs from the return URL's query string alone.

    Attributes:
        state (CheckoutState): Current step.
        order_id (str | None): Backend order id once step 3 has succeeded. Once
            held, step 3 is never issued again by this instance.
        navigation (Navigation | None): Where the UI should go after the last call.
        error (str | None): Human-readable reason of the last failure.

    Compensation:
        - Failures at steps 4–6 keep the order in PENDING on the backend, keep
          the cart untouched, and allow retry() from step 4 with the same order.
        - back_to_cart() abandons the order; the backend expires it.
    """

    def __init__(self, api, auth, cart, processor, address_book, notifier, origin: str = STOREFRONT_ORIGIN):
        self.api = api
        self.auth = auth
        self.cart = cart
        self.processor = processor
        self.address_book = address_book
        self.notifier = notifier
        self.origin = origin.rstrip("/")

        self.state = CheckoutState.IDLE
        self.addresses = []
        self.selected_address: Optional[Address] = None
        self.order_id: Optional[str] = None
        self.client_secret: Optional[str] = None
        self.payment_intent_id: Optional[str] = None
        self.error: Optional[str] = None
        self.navigation: Optional[Navigation] = None

    @property
    def log_prefix(self):
        return f"[Order: {self.order_id or 'new'}]"

    @property
    def return_url(self) -> str:
        return f"{self.origin}/payment-success?{urlencode({'orderId': self.order_id})}"

    def _go(self, path, **state):
        self.navigation = Navigation(path=path, state=state)
        return self.navigation

    # --- 1./2. Guard and address selection ---

    def _guard(self) -> Optional[Navigation]:
        if not self.auth.is_authenticated:
            self.notifier.error("Please login to checkout")
            return self._go("/login", **{"from": "/checkout"})
        if self.cart.is_empty:
            self.notifier.error("Your cart is empty")
            return self._go("/cart")
        return None

    def start(self) -> Optional[Navigation]:
        """
        Enters address selection.

        Returns:
            Navigation | None: Redirect to login or cart when the guard fails.
        """
        redirect = self._guard()
        if redirect is not None:
            log.info(f"{self.log_prefix} Checkout blocked, redirecting to {redirect.path}.")
            return redirect

        self.addresses = self.address_book.list() or []
        self.selected_address = self.address_book.default(self.addresses)
        self.state = CheckoutState.ADDRESS_SELECTION
        self.navigation = None
        log.info(f"{self.log_prefix} Checkout started with {len(self.addresses)} saved address(es).")
        return None

    def select_address(self, address_or_id):
        if isinstance(address_or_id, Address):
            self.selected_address = address_or_id
            return self.selected_address
        for address in self.addresses:
            if address.id == str(address_or_id):
                self.selected_address = address
                return address
        raise KeyError(f"Unknown address {address_or_id}")

    def add_address(self, form) -> Optional[Address]:
        """
        Saves a new address and reloads the book, so the default flag reflects
        what the server decided.
        """
        created = self.address_book.create(form)
        if created is None:
            return None
        self.addresses = self.address_book.list() or [created]
        for address in self.addresses:
            if address.id == created.id:
                created = address
        if created.isDefault or self.selected_address is None:
            self.selected_address = created
        return created

    # --- 3. Order creation ---

    def place_order(self, payment_method: str) -> CheckoutState:
        """
        Creates the order and runs the payment steps.

        Args:
            payment_method (str): Processor payment method id collected by the UI.

        Returns:
            CheckoutState: SUCCESS, FAILURE, PAYMENT_COLLECTION (off-site redirect
            pending, see navigation) or ADDRESS_SELECTION (order not created).
        """
        if self.state == CheckoutState.SUCCESS:
            log.info(f"{self.log_prefix} Checkout already completed, ignoring.")
            return self.state

        if self.order_id:
            # An order exists for this attempt; continue with payment only.
            log.warning(f"{self.log_prefix} Order already created, not re-submitting. Continuing at payment.")
            return self._pay(payment_method)

        if self.state != CheckoutState.ADDRESS_SELECTION:
            redirect = self.start()
            if redirect is not None:
                return self.state

        if self.selected_address is None:
            self.notifier.error("Please select a delivery address")
            return self.state

        redirect = self._guard()
        if redirect is not None:
            return self.state

        self.state = CheckoutState.ORDER_CREATION
        self.error = None
        log.info(f"{self.log_prefix} Step 3: creating order...")
        lines = [
            OrderLine(productId=item.productId, quantity=item.quantity, size=item.size, color=item.color)
            for item in self.cart.items
        ]
        payload = {
            "items": [line.model_dump() for line in lines],
            "shippingAddress": self.selected_address.model_dump(mode="json"),
            "paymentMethod": "CARD",
        }

        try:
            data = self.api.post("/orders", json=payload)
        except ApiError as e:
            # Not retried: a second submission could create a duplicate order.
            log.error(f"{self.log_prefix} Order creation failed: {e.message}")
            self.error = e.message
            self.state = CheckoutState.ADDRESS_SELECTION
            self.notifier.report(e, "Failed to place order")
            return self.state

        try:
            self.order_id = str(data["order"]["id"])
        except (KeyError, TypeError):
            log.error(f"{self.log_prefix} Order response carried no order id: {data}")
            self.error = "Failed to place order"
            self.state = CheckoutState.ADDRESS_SELECTION
            self.notifier.error("Failed to place order")
            return self.state
        log.info(f"{self.log_prefix} Order created.")
        return self._pay(payment_method)

    def retry(self, payment_method: str) -> CheckoutState:
        """Re-enters at step 4 with the held order id."""
        if self.state != CheckoutState.FAILURE or not self.order_id:
            log.info(f"{self.log_prefix} Nothing to retry in state {self.state.value}.")
            return self.state
        log.info(f"{self.log_prefix} Retrying payment.")
        return self._pay(payment_method)

    def recover_failed(self, order_id: str) -> CheckoutState:
        """
        Re-attaches a failed attempt after a restart (e.g. from the failure page)
        so that retry() can reuse its order.
        """
        if not self.auth.is_authenticated:
            self._go("/login", **{"from": "/checkout"})
            return self.state
        self.order_id = str(order_id)
        self.state = CheckoutState.FAILURE
        log.info(f"{self.log_prefix} Failed checkout recovered for retry.")
        return self.state

    def back_to_cart(self) -> Navigation:
        """Abandons the attempt. The order, if any, stays PENDING for the backend to expire."""
        if self.order_id:
            log.info(f"{self.log_prefix} Abandoned by customer; order left PENDING.")
        self.order_id = None
        self.client_secret = None
        self.payment_intent_id = None
        self.state = CheckoutState.IDLE
        return self._go("/cart")

    # --- 4./5. Payment intent and collection ---

    def _pay(self, payment_method: str) -> CheckoutState:
        self.error = None

        self.state = CheckoutState.PAYMENT_INTENT_CREATION
        log.info(f"{self.log_prefix} Step 4: requesting payment intent...")
        try:
            data = self.api.post("/payment/create-intent", json={"orderId": self.order_id})
            self.client_secret = data["clientSecret"]
        except ApiError as e:
            log.error(f"{self.log_prefix} Payment intent creation failed: {e.message}")
            return self._fail(e.message if e.status_code and e.status_code < 500 else "Failed to start payment")
        except (KeyError, TypeError):
            log.error(f"{self.log_prefix} Payment intent response carried no client secret.")
            return self._fail("Failed to start payment")

        self.state = CheckoutState.PAYMENT_COLLECTION
        log.info(f"{self.log_prefix} Step 5: confirming payment with processor...")
        try:
            confirmation = self.processor.confirm_payment(self.client_secret, payment_method, self.return_url)
        except PaymentError as e:
            log.error(f"{self.log_prefix} Payment failed at processor: {e.message} ({e.code})")
            return self._fail(e.message)

        self.payment_intent_id = confirmation.paymentIntentId

        if confirmation.requires_redirect:
            log.info(f"{self.log_prefix} Processor requires off-site authentication, redirecting.")
            self._go(confirmation.redirectUrl, external=True)
            return self.state

        if not confirmation.succeeded:
            log.warning(f"{self.log_prefix} Processor returned status '{confirmation.status}'.")
            return self._fail("Payment was not completed. Please try again.")

        return self._verify(confirmation.paymentIntentId)

    # --- 6./7. Verification and terminal states ---

    def _verify(self, payment_intent_id: str) -> CheckoutState:
        self.state = CheckoutState.PAYMENT_VERIFICATION
        log.info(f"{self.log_prefix} Step 6: verifying payment {payment_intent_id} with backend...")
        try:
            self.api.post("/payment/verify", json={
                "paymentIntentId": payment_intent_id,
                "orderId": self.order_id,
            })
        except ApiError as e:
            log.error(f"{self.log_prefix} Payment verification failed: {e.message}")
            return self._fail("Payment verification failed")

        self.state = CheckoutState.SUCCESS
        self.client_secret = None
        self.cart.clear_cart()
        self.notifier.success("Payment successful!")
        self._go(f"/orders/{self.order_id}", orderSuccess=True, paymentSuccess=True)
        log.info(f"{self.log_prefix} Checkout completed successfully.")
        return self.state

    def _fail(self, message: str) -> CheckoutState:
        self.state = CheckoutState.FAILURE
        self.error = message
        self.client_secret = None
        self.notifier.error(message)
        self._go("/payment-failed", orderId=self.order_id, error=message)
        return self.state

    def resume_from_redirect(self, query_params) -> CheckoutState:
        """
        Completes step 6 after an off-site redirect, from a cold start.

        Args:
            query_params (Mapping): The return URL's query string: ``orderId`` plus
                the processor's ``payment_intent`` and ``redirect_status``.

        Returns:
            CheckoutState: SUCCESS or FAILURE; IDLE when no order id was given.
        """
        order_id = query_params.get("orderId")
        if not order_id:
            log.warning("[Order: unknown] Payment return without orderId.")
            self._go("/orders")
            return self.state

        self.order_id = str(order_id)
        self.payment_intent_id = query_params.get("payment_intent")
        redirect_status = query_params.get("redirect_status")
        log.info(f"{self.log_prefix} Resuming after redirect (status: {redirect_status}).")

        if redirect_status == "failed":
            return self._fail("Payment was declined")
        if not self.payment_intent_id:
            return self._fail("Payment verification failed")
        return self._verify(self.payment_intent_id)
