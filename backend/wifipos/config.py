# backend/wifipos/config.py
from __future__ import annotations
import os


# The portal firmware crashes when asked for more than 20 tokens per page.
PORTAL_MAX_PAGE_SIZE = 20

# Bulk disable accepts at most 50 token codes per request.
PORTAL_MAX_DISABLE_BATCH = 50


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/wifipos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///wifipos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fernet key (urlsafe base64, 32 bytes) used to encrypt device admin secrets
    DEVICE_CREDENTIAL_KEY = os.environ.get("DEVICE_CREDENTIAL_KEY")

    # Bound on login and on every administrative call to a device
    DEVICE_REQUEST_TIMEOUT_SECONDS = _env_float("DEVICE_REQUEST_TIMEOUT_SECONDS", 30.0)

    # Admin consoles ship self-signed certificates
    DEVICE_VERIFY_TLS = os.environ.get("DEVICE_VERIFY_TLS", "false").lower() == "true"

    # Connected-client reconciliation pacing
    CLIENT_SYNC_PAGE_SIZE = min(
        int(os.environ.get("CLIENT_SYNC_PAGE_SIZE", PORTAL_MAX_PAGE_SIZE)),
        PORTAL_MAX_PAGE_SIZE,
    )
    CLIENT_SYNC_PAGE_DELAY_SECONDS = _env_float("CLIENT_SYNC_PAGE_DELAY_SECONDS", 2.0)
    CLIENT_SYNC_BUSINESS_DELAY_SECONDS = _env_float("CLIENT_SYNC_BUSINESS_DELAY_SECONDS", 5.0)

    # Pause between bulk-disable batches sent to one portal during expiry
    PORTAL_DISABLE_BATCH_DELAY_SECONDS = _env_float("PORTAL_DISABLE_BATCH_DELAY_SECONDS", 1.0)

    # Optional callable(actor_id, action, business_id) -> bool supplied by the host
    AUTHORIZER = None
