# Overview: Flask API routes for device health checks and MAC blocking.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import device_service, mac_filter_service
from ..services.device_service import DeviceNotFoundError
from ..services.mac_filter_service import MacFilterError
from ..services.token_issuance_service import IntegrationMissingError, load_active_device
from ..decorators import require_actor


devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


@devices_bp.post("/<int:device_id>/health-check")
@require_actor("MANAGE_DEVICES")
def health_check_route(device_id: int):
    """Probe the device now and return its updated registry row."""
    try:
        device = device_service.check_device_health(device_id)
        return jsonify({"device": device.to_dict()}), 200
    except DeviceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Device health check failed")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.post("/<int:device_id>/mac-filter")
@require_actor("MANAGE_DEVICES")
def block_mac_route(device_id: int):
    """
    Block a client hardware address on the device.

    Request body:
    {
        "business_id": 1,
        "mac_address": "AA:BB:CC:DD:EE:FF",
        "reason": "abuse"  (optional)
    }
    """
    try:
        data = request.get_json() or {}
        business_id = data.get("business_id")
        mac_address = data.get("mac_address")
        if business_id is None or not mac_address:
            return jsonify({"error": "business_id and mac_address required"}), 400

        # The device in the path must be the business's active admin console
        if load_active_device(business_id).id != device_id:
            return jsonify({"error": "Device not found"}), 404

        entry = mac_filter_service.block_mac(
            business_id=business_id,
            mac_address=mac_address,
            created_by=g.actor_id,
            reason=data.get("reason"),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except IntegrationMissingError as e:
        return jsonify({"error": str(e)}), 409
    except MacFilterError as e:
        if "mac_address" in e.details:
            return jsonify({"error": str(e)}), 502
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to block MAC address")
        return jsonify({"error": "Internal server error"}), 500
