# backend/wifipos/routes/system.py
"""
System health endpoint.

Reports database reachability and the last known state of every registered
device. It does not contact devices; use the device health-check route for
a live probe.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Business, DeviceRegistry
from ..models.devices import CONNECTION_CONNECTED
from wifipos.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        business_count = db.session.query(Business).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"businesses": business_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_devices_health() -> dict:
    """Degraded when any active device was last seen disconnected."""
    try:
        devices = db.session.query(DeviceRegistry).filter_by(is_active=True).all()
        disconnected = [d for d in devices if d.connection_status != CONNECTION_CONNECTED and d.last_health_check]
        return {
            "status": "degraded" if disconnected else "healthy",
            "details": {
                "registered": len(devices),
                "disconnected": [
                    {"id": d.id, "last_error": d.last_error, "last_health_check": to_utc_z(d.last_health_check)}
                    for d in disconnected
                ],
            },
        }
    except Exception:
        current_app.logger.exception("Device registry health check failed")
        return {"status": "unhealthy", "error": "Device registry error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    devices_health = check_devices_health()

    all_checks = [database_health, devices_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "devices": devices_health,
        },
    }, http_status
