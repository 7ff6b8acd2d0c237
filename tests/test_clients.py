import httpx
import pytest

from storefront_client.clients import ApiClient, PaymentProcessorClient
from storefront_client.errors import (
    AuthorizationError,
    ConflictError,
    PaymentError,
    PermissionDeniedError,
    TransientError,
)


def client_for(handler, **kwargs):
    http = httpx.Client(base_url="http://api.test/api", transport=httpx.MockTransport(handler))
    return ApiClient(http_client=http, **kwargs)


def test_bearer_token_and_data_unwrapping():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["path"] = request.url.path
        return httpx.Response(200, json={"success": True, "data": {"cart": {"items": []}}})

    api = client_for(handler, token_provider=lambda: "tok-1")
    assert api.get("/cart") == {"cart": {"items": []}}
    assert seen == {"auth": "Bearer tok-1", "path": "/api/cart"}


def test_no_token_no_header():
    def handler(request):
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"success": True, "data": {}})

    client_for(handler).get("/products")


@pytest.mark.parametrize("status, error", [
    (400, ConflictError),
    (404, ConflictError),
    (409, ConflictError),
    (403, PermissionDeniedError),
    (500, TransientError),
    (503, TransientError),
])
def test_status_mapping(status, error):
    api = client_for(lambda request: httpx.Response(status, json={"success": False, "message": "nope"}))
    with pytest.raises(error) as exc_info:
        api.post("/cart/add", json={})
    assert exc_info.value.status_code == status
    assert exc_info.value.message == "nope"


def test_unauthorized_hook_only_for_authenticated_requests():
    calls = []
    api = client_for(lambda request: httpx.Response(401, json={"message": "expired"}))
    api.on_unauthorized = lambda: calls.append(1)

    with pytest.raises(AuthorizationError):
        api.post("/auth/login", json={})
    assert calls == []

    api.token_provider = lambda: "tok"
    with pytest.raises(AuthorizationError):
        api.get("/cart")
    assert calls == [1]


def test_success_false_is_conflict():
    api = client_for(lambda request: httpx.Response(200, json={"success": False, "message": "Out of stock"}))
    with pytest.raises(ConflictError, match="Out of stock"):
        api.get("/cart")


def test_server_field_errors_are_kept():
    body = {"success": False, "message": "Invalid", "errors": [{"field": "email", "message": "taken"}]}
    api = client_for(lambda request: httpx.Response(422, json=body))
    with pytest.raises(ConflictError) as exc_info:
        api.post("/auth/register", json={})
    assert exc_info.value.field_errors == {"email": "taken"}


def test_network_failures_are_transient():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientError) as exc_info:
        client_for(refuse).get("/cart")
    assert exc_info.value.status_code is None

    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransientError):
        client_for(slow).get("/cart")


def processor_for(handler):
    http = httpx.Client(base_url="http://processor.test", transport=httpx.MockTransport(handler))
    return PaymentProcessorClient(http_client=http, publishable_key="pk_test_1")


def test_confirm_payment_posts_form_to_intent():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"id": "pi_123", "status": "succeeded"})

    confirmation = processor_for(handler).confirm_payment("pi_123_secret_abc", "pm_card_visa", "http://shop/r")
    assert confirmation.succeeded
    assert confirmation.paymentIntentId == "pi_123"
    assert seen["path"] == "/v1/payment_intents/pi_123/confirm"
    assert "client_secret=pi_123_secret_abc" in seen["body"]
    assert "key=pk_test_1" in seen["body"]


def test_confirm_payment_redirect():
    body = {"id": "pi_1", "status": "requires_action",
            "next_action": {"type": "redirect_to_url", "redirect_to_url": {"url": "https://bank.test/3ds"}}}
    confirmation = processor_for(lambda r: httpx.Response(200, json=body)).confirm_payment(
        "pi_1_secret_x", "pm_card_3ds", "http://shop/r")
    assert confirmation.requires_redirect
    assert confirmation.redirectUrl == "https://bank.test/3ds"


def test_declined_payment_carries_processor_message():
    body = {"error": {"code": "card_declined", "message": "Your card was declined."}}
    processor = processor_for(lambda r: httpx.Response(402, json=body))
    with pytest.raises(PaymentError) as exc_info:
        processor.confirm_payment("pi_1_secret_x", "pm_card_decline", "http://shop/r")
    assert exc_info.value.message == "Your card was declined."
    assert exc_info.value.code == "card_declined"


def test_processor_unreachable_is_payment_error():
    def refuse(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(PaymentError) as exc_info:
        processor_for(refuse).confirm_payment("pi_1_secret_x", "pm_card_visa", "http://shop/r")
    assert exc_info.value.code == "network_error"


def test_malformed_client_secret():
    with pytest.raises(PaymentError):
        PaymentProcessorClient.intent_id_from_secret("garbage")
