from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from mock_services import mock_payment_processor, mock_storefront_api
from mock_services.mock_payment_processor import PaymentIntentLedger
from mock_services.mock_storefront_api import MockStore
from storefront_client.clients import ApiClient, PaymentProcessorClient
from storefront_client.models import CartLineItem
from storefront_client.notifications import Notifier
from storefront_client.storage import MemoryStorage
from storefront_client.storefront import Storefront

PROCESSOR_URL = "http://processor.test"
ORIGIN = "http://shop.test"


def make_line(product_id="p1", price="1299", quantity=1, size=None, color=None, stock=10, name=None):
    return CartLineItem(
        productId=product_id,
        name=name or f"Product {product_id}",
        unitPrice=Decimal(price),
        imageRefs=[f"https://cdn.example.com/{product_id}.jpg"],
        availableStock=stock,
        size=size,
        color=color,
        quantity=quantity,
    )


@pytest.fixture
def ledger():
    return PaymentIntentLedger()


@pytest.fixture
def backend(ledger):
    return MockStore(ledger)


@pytest.fixture
def api_http(backend):
    client = TestClient(mock_storefront_api.create_app(backend))
    yield client
    client.close()


@pytest.fixture
def processor_http(ledger):
    client = TestClient(mock_payment_processor.create_app(ledger, base_url=PROCESSOR_URL), base_url=PROCESSOR_URL)
    yield client
    client.close()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def make_storefront(storage, api_http, processor_http, notifier):
    def _make(storage=storage, restore=True):
        return Storefront(
            storage=storage,
            api=ApiClient(http_client=api_http),
            processor=PaymentProcessorClient(http_client=processor_http),
            notifier=notifier,
            origin=ORIGIN,
            restore=restore,
        )
    return _make


@pytest.fixture
def storefront(make_storefront):
    return make_storefront()


@pytest.fixture
def signed_in(storefront):
    result = storefront.session.sign_in("alice@example.com", "secret123")
    assert result.ok
    return storefront


@pytest.fixture
def line():
    return make_line
