"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
# Note: production URLs should be added via FRONTEND_URL environment variable
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite) - localhost
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = [origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()]

# Pagination
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Usage sessions
ALLOWED_SESSION_EXTENSION_MINUTES = [60, 120, 240, 360, 720, 1440]  # 1h, 2h, 4h, 6h, 12h, 24h

# Notification queue scheduler settings
NOTIFICATION_SCHEDULER_MAX_INSTANCES = 1  # Prevent overlapping queue ticks

# Webhooks
WEBHOOK_REQUEST_TIMEOUT_SECONDS = 10.0
WEBHOOK_TIMESTAMP_HEADER = "X-Webhook-Timestamp"
DEFAULT_WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"
WEBHOOK_SECRET_PREFIX = "whsec_"
WEBHOOK_SECRET_BYTES = 24  # Rendered as 48 hex characters after the prefix
WEBHOOK_METHODS_WITH_BODY = {"POST", "PUT", "PATCH"}
WEBHOOK_ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

# MQTT
MQTT_CONNECT_TIMEOUT_SECONDS = 10.0
MQTT_RECONNECT_PERIOD_SECONDS = 5
MQTT_CLIENT_ID_PREFIX = "makerspace-api-"
MQTT_KEEPALIVE_SECONDS = 60
