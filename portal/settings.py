"""Runtime configuration for the order portal client.

Values are read once from the environment at import time. Consumers read
them through ``getattr(settings, NAME, default)`` so tests (and embedding
applications) can override any of them at runtime.
"""

import os
from decimal import Decimal

# Remote API
API_BASE_URL = os.getenv("PORTAL_API_URL", "http://localhost:8080")
ORDERS_PATH = "/api/orders"
PAYMENTS_PATH = "/api/payments"
USE_HTTP_ADAPTERS = os.getenv("USE_HTTP_ADAPTERS", "1") not in ("0", "false", "False")

# HTTP transport
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "10"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))  # total attempts
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "1.0"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "30.0"))

# Cancellation: the backend saga needs time to settle before a refetch
CANCEL_INVALIDATION_DELAY_SECS = float(os.getenv("CANCEL_INVALIDATION_DELAY_SECS", "10"))

# Business
ORDERS_PER_PAGE = int(os.getenv("ORDERS_PER_PAGE", "10"))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.10"))

# Service metadata / liveness
ENVIRONMENT = os.getenv("PORTAL_ENV", "development")
VERSION = os.getenv("PORTAL_VERSION", "1.0.0")
HEALTH_HOST = os.getenv("HEALTH_HOST", "0.0.0.0")
HEALTH_PORT = int(os.getenv("HEALTH_PORT", "3000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
