"""
This module provides the communication clients used by the storefront client:
- Storefront backend (REST API, bearer-token authenticated)
- Payment processor (REST API, client-side confirmation with a publishable key)
Each class encapsulates its protocol logic, error mapping, and connection management.
"""

import logging

import httpx

from .config import (
    HTTP_READ_TIMEOUT,
    HTTP_TIMEOUT,
    PAYMENT_PROCESSOR_URL,
    PAYMENT_PUBLISHABLE_KEY,
    STOREFRONT_API_URL,
)
from .errors import (
    ApiError,
    AuthorizationError,
    ConflictError,
    PaymentError,
    PermissionDeniedError,
    TransientError,
)
from .models import PaymentConfirmation

log = logging.getLogger(__name__)


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return default


def _field_errors(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        return {}
    return {err["field"]: err.get("message", "") for err in errors if isinstance(err, dict) and "field" in err}


# --- Storefront Client (REST) ---
class ApiClient:
    """
    Client for the storefront backend (REST API).
    Attaches the bearer token of the current session and maps every failure to
    the error taxonomy in errors.py.

    Attributes:
        on_unauthorized (callable | None): Invoked when an authenticated request
            is answered with 401. The session coordinator installs its reset here.
    """
    def __init__(self, base_url: str = STOREFRONT_API_URL, token_provider=None, http_client=None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Backend base URL, e.g. 'http://localhost:5000/api'.
            token_provider (callable | None): Returns the current access token or None.
            http_client (httpx.Client | None): Pre-built client (tests inject one);
                it is not closed by this instance.
        """
        self.token_provider = token_provider
        self.on_unauthorized = None
        self._owns_client = http_client is None
        if http_client is None:
            timeout_config = httpx.Timeout(HTTP_TIMEOUT, read=HTTP_READ_TIMEOUT)
            http_client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = http_client

    def close(self):
        """Closes the HTTP client session if this instance created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _headers(self):
        token = self.token_provider() if self.token_provider else None
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    def request(self, method: str, path: str, json=None, params=None) -> dict:
        """
        Issues one request and returns the ``data`` object of the response body.

        Args:
            method (str): HTTP method.
            path (str): Path relative to the base URL, e.g. '/cart'.
            json (dict | None): JSON body.
            params (dict | None): Query-string parameters; None values are dropped.

        Returns:
            dict: The ``data`` member of ``{success, data}``, or {} when absent.

        Raises:
            AuthorizationError: 401 response.
            PermissionDeniedError: 403 response.
            ConflictError: Other 4xx responses, or ``success: false``.
            TransientError: 5xx responses, timeouts and connection failures.
        """
        headers = self._headers()
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            response = self.client.request(method, path, json=json, params=params or None, headers=headers)
            response.raise_for_status()  # HTTPStatusError on 4xx/5xx
        except httpx.TimeoutException as e:
            log.error(f"[API] {method} {path} timed out ({type(e).__name__}). Outcome unknown.")
            raise TransientError("The server took too long to respond") from e
        except httpx.TransportError as e:
            log.error(f"[API] {method} {path} failed: backend unreachable ({e}).")
            raise TransientError("Unable to reach the server") from e
        except httpx.HTTPStatusError as e:
            raise self._map_status_error(method, path, e.response, authenticated=bool(headers)) from e

        try:
            body = response.json()
        except ValueError:
            return {}
        if isinstance(body, dict) and body.get("success") is False:
            raise ConflictError(body.get("message") or "Request failed", status_code=response.status_code)
        if isinstance(body, dict):
            return body.get("data") or {}
        return {}

    def _map_status_error(self, method, path, response, authenticated):
        status = response.status_code
        message = _error_message(response, f"Request failed with status {status}")

        if status == 401:
            log.warning(f"[API] {method} {path} rejected with 401: {message}")
            if authenticated and self.on_unauthorized:
                self.on_unauthorized()
            return AuthorizationError(message, status_code=status)
        if status == 403:
            log.warning(f"[API] {method} {path} forbidden: {message}")
            return PermissionDeniedError(message, status_code=status)
        if status >= 500:
            log.error(f"[API] {method} {path} server error {status}: {message}")
            return TransientError(message, status_code=status)
        log.info(f"[API] {method} {path} rejected with {status}: {message}")
        return ConflictError(message, status_code=status, field_errors=_field_errors(response))

    def get(self, path: str, params=None) -> dict:
        return self.request("GET", path, params=params)

    def post(self, path: str, json=None) -> dict:
        return self.request("POST", path, json=json)

    def put(self, path: str, json=None) -> dict:
        return self.request("PUT", path, json=json)

    def delete(self, path: str) -> dict:
        return self.request("DELETE", path)


# --- Payment Processor Client (REST) ---
class PaymentProcessorClient:
    """
    Client-side confirmation against the payment processor (REST API).
    Only the publishable key and the per-intent client secret are used here;
    the secret API key stays on the backend.
    """
    def __init__(self, base_url: str = PAYMENT_PROCESSOR_URL, publishable_key: str = PAYMENT_PUBLISHABLE_KEY,
                 http_client=None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Processor API base URL.
            publishable_key (str): Publishable (client-side) key.
            http_client (httpx.Client | None): Pre-built client, not closed by this instance.
        """
        self.publishable_key = publishable_key
        self._owns_client = http_client is None
        if http_client is None:
            timeout_config = httpx.Timeout(HTTP_TIMEOUT, read=HTTP_READ_TIMEOUT)
            http_client = httpx.Client(base_url=base_url, timeout=timeout_config)
        self.client = http_client

    def close(self):
        """Closes the HTTP client session if this instance created it."""
        if self._owns_client:
            self.client.close()

    @staticmethod
    def intent_id_from_secret(client_secret: str) -> str:
        """The intent id is the part of the client secret before '_secret_'."""
        intent_id, sep, _ = client_secret.partition("_secret_")
        if not sep or not intent_id:
            raise PaymentError("Invalid payment client secret", code="invalid_client_secret")
        return intent_id

    def confirm_payment(self, client_secret: str, payment_method: str, return_url: str) -> PaymentConfirmation:
        """
        Confirms a payment intent with the given payment method.
        Args:
            client_secret (str): Client secret obtained from the backend.
            payment_method (str): Processor payment method id, e.g. 'pm_card_visa'.
            return_url (str): Where the processor sends the browser after off-site authentication.
        Returns:
            PaymentConfirmation: 'succeeded', or 'requires_action' with a redirect URL.
        Raises:
            PaymentError: If the processor declines the payment or cannot be reached.
        """
        intent_id = self.intent_id_from_secret(client_secret)
        payload = {
            "key": self.publishable_key,
            "client_secret": client_secret,
            "payment_method": payment_method,
            "return_url": return_url,
        }

        try:
            response = self.client.post(f"/v1/payment_intents/{intent_id}/confirm", data=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            # The outcome is unknown; verification on the backend settles it.
            log.error(f"[Payment: {intent_id}] Processor timeout during confirmation.")
            raise PaymentError("An unexpected error occurred. Please try again.", code="timeout") from e
        except httpx.TransportError as e:
            log.error(f"[Payment: {intent_id}] Processor unreachable: {e}")
            raise PaymentError("An unexpected error occurred. Please try again.", code="network_error") from e
        except httpx.HTTPStatusError as e:
            error = {}
            try:
                error = e.response.json().get("error") or {}
            except ValueError:
                pass
            message = error.get("message") or "Payment failed"
            if e.response.status_code == 402:
                log.warning(f"[Payment: {intent_id}] Payment declined: {message}")
            else:
                log.error(f"[Payment: {intent_id}] Processor HTTP error {e.response.status_code}: {message}")
            raise PaymentError(message, code=error.get("code")) from e

        body = response.json()
        redirect_url = None
        next_action = body.get("next_action") or {}
        if next_action.get("type") == "redirect_to_url":
            redirect_url = (next_action.get("redirect_to_url") or {}).get("url")

        confirmation = PaymentConfirmation(
            paymentIntentId=body.get("id", intent_id),
            status=body.get("status", "unknown"),
            redirectUrl=redirect_url,
        )
        log.info(f"[Payment: {intent_id}] Confirmation returned status '{confirmation.status}'.")
        return confirmation
