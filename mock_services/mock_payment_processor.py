"""
mock_payment_processor.py — Mock Implementation of the Payment Processor (REST API)

This module provides a simulated payment processor for testing the checkout workflow.
It exposes a FastAPI application that mimics the processor's client-side
confirmation endpoint and its off-site authentication redirect.

Simulation Scenarios (chosen by payment method id):
    • pm_card_decline*  → card declined (HTTP 402)
    • pm_card_3ds*      → requires off-site authentication (redirect)
    • pm_card_timeout*  → slow response (simulates a client read timeout)
    • anything else     → successful payment

Endpoints:
    POST /v1/payment_intents/{intent_id}/confirm — Confirms an intent (form-encoded).
    GET  /v1/3ds/{intent_id}/complete           — Finishes off-site authentication.

Port:
    Default: 8001 (HTTP)
"""

import logging
import secrets
import threading
import time
from typing import Optional
from urllib.parse import urlencode

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

logging.basicConfig(level=logging.INFO)


class PaymentIntent(BaseModel):
    """
    Represents a payment intent held by the processor.

    Attributes:
        id (str): Intent id ('pi_...').
        clientSecret (str): Secret handed to the client ('pi_..._secret_...').
        orderId (str): Storefront order the intent pays for.
        amount (int): Amount in the smallest currency unit.
        currency (str): ISO 4217 currency code.
        status (str): requires_payment_method | requires_action | succeeded | failed.
        returnUrl (str | None): Return URL supplied at confirmation.
    """
    id: str
    clientSecret: str
    orderId: str
    amount: int
    currency: str = "inr"
    status: str = "requires_payment_method"
    returnUrl: Optional[str] = None


class PaymentIntentLedger:
    """Intents shared between the processor mock and the storefront mock (which verifies against it)."""

    def __init__(self):
        self.intents = {}
        self.confirm_calls = 0
        self._lock = threading.Lock()

    def create(self, order_id: str, amount: int, currency: str = "inr") -> PaymentIntent:
        intent_id = f"pi_{secrets.token_hex(8)}"
        intent = PaymentIntent(
            id=intent_id,
            clientSecret=f"{intent_id}_secret_{secrets.token_hex(8)}",
            orderId=order_id,
            amount=amount,
            currency=currency,
        )
        with self._lock:
            self.intents[intent_id] = intent
        return intent

    def get(self, intent_id: str) -> Optional[PaymentIntent]:
        return self.intents.get(intent_id)

    def set_status(self, intent_id: str, status: str, return_url: Optional[str] = None):
        with self._lock:
            intent = self.intents[intent_id]
            intent.status = status
            if return_url is not None:
                intent.returnUrl = return_url


def _error(status_code, code, message):
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": message}})


def create_app(ledger: Optional[PaymentIntentLedger] = None, base_url: str = "http://localhost:8001",
               timeout_seconds: float = 10.0) -> FastAPI:
    """
    Builds the mock processor app.

    Args:
        ledger (PaymentIntentLedger | None): Shared intent ledger.
        base_url (str): Public URL of this service, used in redirect links.
        timeout_seconds (float): Delay of the timeout scenario.
    """
    app = FastAPI(title="Mock Payment Processor")
    app.state.ledger = ledger or PaymentIntentLedger()

    @app.post("/v1/payment_intents/{intent_id}/confirm")
    def confirm(intent_id: str, key: str = Form(...), client_secret: str = Form(...),
                payment_method: str = Form(...), return_url: str = Form(...)):
        """
        Confirms a payment intent.

        Returns:
            dict: The intent with its new status, and a next_action for 3-D Secure.

        Raises:
            HTTPException(401): Missing or invalid publishable key.
            JSON 400/402: Unknown intent, wrong secret, or declined card.
        """
        ledger = app.state.ledger
        ledger.confirm_calls += 1
        logging.info(f"[PP] Confirmation for {intent_id} with {payment_method}")

        if not key.startswith("pk_"):
            raise HTTPException(status_code=401, detail="Invalid publishable key")

        intent = ledger.get(intent_id)
        if intent is None or intent.clientSecret != client_secret:
            return _error(400, "resource_missing", "No such payment_intent")

        if intent.status == "succeeded":
            return _error(400, "payment_intent_unexpected_state", "This PaymentIntent has already succeeded.")

        # Scenario simulation
        if payment_method.startswith("pm_card_decline"):
            logging.warning(f"[PP] Payment for {intent.orderId} declined.")
            ledger.set_status(intent_id, "requires_payment_method", return_url)
            return _error(402, "card_declined", "Your card was declined.")

        if payment_method.startswith("pm_card_timeout"):
            logging.info(f"[PP] Simulating timeout for {intent.orderId}...")
            time.sleep(timeout_seconds)
            return _error(500, "timeout", "Request timed out")

        if payment_method.startswith("pm_card_3ds"):
            ledger.set_status(intent_id, "requires_action", return_url)
            return {
                "id": intent_id,
                "status": "requires_action",
                "next_action": {
                    "type": "redirect_to_url",
                    "redirect_to_url": {
                        "url": f"{base_url}/v1/3ds/{intent_id}/complete",
                        "return_url": return_url,
                    },
                },
            }

        # Success case
        ledger.set_status(intent_id, "succeeded", return_url)
        logging.info(f"[PP] Payment for {intent.orderId} succeeded.")
        return {"id": intent_id, "status": "succeeded", "next_action": None}

    @app.get("/v1/3ds/{intent_id}/complete")
    def complete_authentication(intent_id: str, outcome: str = "succeeded"):
        """
        Simulates the bank page: finishes authentication and redirects back to
        the storefront's return URL with the processor's query parameters.
        """
        ledger = app.state.ledger
        intent = ledger.get(intent_id)
        if intent is None or intent.status != "requires_action":
            raise HTTPException(status_code=404, detail="No authentication pending")

        status = "succeeded" if outcome == "succeeded" else "requires_payment_method"
        ledger.set_status(intent_id, status)
        params = urlencode({
            "payment_intent": intent.id,
            "payment_intent_client_secret": intent.clientSecret,
            "redirect_status": "succeeded" if status == "succeeded" else "failed",
        })
        separator = "&" if "?" in intent.returnUrl else "?"
        return RedirectResponse(url=f"{intent.returnUrl}{separator}{params}", status_code=302)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8001)
