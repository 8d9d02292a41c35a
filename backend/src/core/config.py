"""
Environment-driven settings for the makerspace backend.

Values come from the process environment, optionally seeded from a .env file
(see backend/.env.example). The file is skipped under pytest.
"""

import os
import pathlib
from dotenv import load_dotenv

_BACKEND_DIR = pathlib.Path(__file__).resolve().parent.parent.parent


def _load_env_file() -> None:
    """Load the first .env found in backend/, the repository root or the cwd."""
    for candidate in (
        _BACKEND_DIR / ".env",
        _BACKEND_DIR.parent / ".env",
        pathlib.Path.cwd() / ".env",
    ):
        if candidate.exists():
            load_dotenv(candidate)
            return


if os.getenv("PYTEST_VERSION") is None:
    _load_env_file()


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost/makerspace_dev")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Member tokens
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = _int_env("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", 60)

# MQTT dispatch; 0 retries means a single attempt
MQTT_MAX_RETRIES = _int_env("MQTT_MAX_RETRIES", 3)
MQTT_RETRY_DELAY_MS = _int_env("MQTT_RETRY_DELAY_MS", 5000)

# Webhook dispatch tick
WEBHOOK_QUEUE_INTERVAL_MS = _int_env("WEBHOOK_QUEUE_INTERVAL_MS", 5000)
