# Overview: Flask API routes that trigger connected-client reconciliation and read its projections.

from flask import Blueprint, request, jsonify, current_app

from ..services import client_sync_service
from ..services.client_sync_service import ClientSyncError
from ..decorators import require_actor


client_sync_bp = Blueprint("client_sync", __name__, url_prefix="/api/client-sync")


@client_sync_bp.post("/businesses/<int:business_id>")
@require_actor("SYNC_CLIENTS")
def sync_business_route(business_id: int):
    """Run one reconciliation pass for a business. Blocks for the whole pass."""
    try:
        result = client_sync_service.sync_business(business_id)
        return jsonify(result.to_dict()), 200
    except ClientSyncError as e:
        if e.details.get("pages_fetched") is not None:
            return jsonify({"error": str(e), "details": e.details}), 502
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Client sync failed")
        return jsonify({"error": "Internal server error"}), 500


@client_sync_bp.post("/all")
@require_actor("SYNC_CLIENTS")
def sync_all_route():
    try:
        summary = client_sync_service.sync_all()
        return jsonify(summary.to_dict()), 200
    except Exception:
        current_app.logger.exception("Client sync (all businesses) failed")
        return jsonify({"error": "Internal server error"}), 500


@client_sync_bp.get("/businesses/<int:business_id>/clients")
@require_actor("VIEW_CLIENTS")
def list_clients_route(business_id: int):
    """Query params: online_only (default false)."""
    try:
        online_only = request.args.get("online_only", "false").lower() == "true"
        clients = client_sync_service.list_connected_clients(business_id, online_only=online_only)
        return jsonify({
            "business_id": business_id,
            "count": len(clients),
            "clients": [c.to_dict() for c in clients],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list connected clients")
        return jsonify({"error": "Internal server error"}), 500
