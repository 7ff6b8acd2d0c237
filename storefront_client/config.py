"""
config.py — Environment Configuration for the Storefront Client

All runtime settings are read once from environment variables at import time.
Defaults target a local development setup (backend on :5000, mock payment
processor on :8001, front-end origin on :5173).
"""

import os
from decimal import Decimal

# Service addresses
STOREFRONT_API_URL = os.environ.get("STOREFRONT_API_URL", "http://localhost:5000/api")
PAYMENT_PROCESSOR_URL = os.environ.get("PAYMENT_PROCESSOR_URL", "http://localhost:8001")
PAYMENT_PUBLISHABLE_KEY = os.environ.get("PAYMENT_PUBLISHABLE_KEY", "pk_test_local")

# Origin used to build the payment return URL
STOREFRONT_ORIGIN = os.environ.get("STOREFRONT_ORIGIN", "http://localhost:5173")

# HTTP timeouts (seconds)
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "5.0"))
HTTP_READ_TIMEOUT = float(os.environ.get("HTTP_READ_TIMEOUT", "8.0"))

# Durable client state
STOREFRONT_STATE_DIR = os.environ.get("STOREFRONT_STATE_DIR", ".storefront")
AUTH_STORAGE_KEY = os.environ.get("AUTH_STORAGE_KEY", "storefront-auth-storage")
CART_STORAGE_KEY = os.environ.get("CART_STORAGE_KEY", "storefront-cart-storage")

# Cart summary pricing
FREE_SHIPPING_THRESHOLD = Decimal(os.environ.get("FREE_SHIPPING_THRESHOLD", "1000"))
SHIPPING_FLAT_RATE = Decimal(os.environ.get("SHIPPING_FLAT_RATE", "50"))
TAX_RATE = Decimal(os.environ.get("TAX_RATE", "0.18"))

# Logging
LOG_FILE = os.environ.get("LOG_FILE", "storefront_client.log")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
