# Overview: Flask API routes for WiFi token sales and lifecycle; parses input and returns JSON responses.

# backend/wifipos/routes/tokens.py
"""
WiFi Token API Routes

WHY: Let the POS (or a direct-sale kiosk) sell tokens and manage them.

STATUS CODES:
- 400: invalid input or state (validation, purge of a sold token)
- 404: token or package not found (foreign packages included)
- 409: business has no active admin-console device
- 502: device refused or could not be reached (device text returned)
- 500: local write failed, or anything unexpected
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import token_issuance_service, token_service
from ..services.token_issuance_service import (
    DeviceRejectedError,
    DeviceUnreachableError,
    IntegrationMissingError,
    TokenIssuanceError,
    TokenPackageNotFoundError,
    TokenPersistenceError,
)
from ..services.token_service import TokenDeviceError, TokenNotFoundError, TokenServiceError
from ..decorators import require_actor


tokens_bp = Blueprint("wifi_tokens", __name__, url_prefix="/api/wifi-tokens")


def _int_arg(name: str):
    raw = request.args.get(name)
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


# =============================================================================
# SALES
# =============================================================================

@tokens_bp.post("/sell")
@require_actor("SELL_WIFI_TOKEN")
def sell_token_route():
    """
    Sell one WiFi token.

    Request body:
    {
        "business_id": 1,
        "token_package_id": 3,
        "sale_amount_cents": 4500,
        "payment_method": "CASH",
        "sale_channel": "POS"  (optional, POS or DIRECT)
    }

    Returns:
        201: credentials, sale, package name and SSID
    """
    try:
        data = request.get_json() or {}

        business_id = data.get("business_id")
        token_package_id = data.get("token_package_id")
        sale_amount_cents = data.get("sale_amount_cents")
        payment_method = data.get("payment_method")

        if business_id is None or token_package_id is None or sale_amount_cents is None or not payment_method:
            return jsonify({
                "error": "business_id, token_package_id, sale_amount_cents, and payment_method required"
            }), 400

        try:
            business_id = int(business_id)
            token_package_id = int(token_package_id)
        except (TypeError, ValueError):
            return jsonify({"error": "business_id and token_package_id must be integers"}), 400

        issued = token_issuance_service.issue_token(
            business_id=business_id,
            token_package_id=token_package_id,
            sale_amount_cents=sale_amount_cents,
            payment_method=payment_method,
            sold_by=g.actor_id,
            sale_channel=data.get("sale_channel") or "POS",
        )
        return jsonify(issued.to_dict()), 201

    except TokenPackageNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except IntegrationMissingError as e:
        return jsonify({"error": str(e)}), 409
    except (DeviceRejectedError, DeviceUnreachableError) as e:
        return jsonify({"error": str(e)}), 502
    except TokenPersistenceError:
        current_app.logger.exception("Token minted but sale not recorded")
        return jsonify({"error": "Internal server error"}), 500
    except TokenIssuanceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to sell WiFi token")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@tokens_bp.get("")
@require_actor("VIEW_WIFI_TOKENS")
def list_tokens_route():
    """List a business's tokens. Query params: business_id (required), status."""
    business_id = _int_arg("business_id")
    if business_id is None:
        return jsonify({"error": "business_id required"}), 400

    try:
        tokens = token_service.list_tokens(business_id, status=request.args.get("status"))
        return jsonify({
            "business_id": business_id,
            "count": len(tokens),
            "tokens": [t.to_dict() for t in tokens],
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list WiFi tokens")
        return jsonify({"error": "Internal server error"}), 500


@tokens_bp.get("/audit")
@require_actor("AUDIT_WIFI_TOKENS")
def audit_tokens_route():
    """Guest passes that exist on the device but have no local record."""
    business_id = _int_arg("business_id")
    if business_id is None:
        return jsonify({"error": "business_id required"}), 400

    try:
        unrecorded = token_service.find_unrecorded_guest_passes(business_id)
        return jsonify({
            "business_id": business_id,
            "unrecorded_count": len(unrecorded),
            "unrecorded_usernames": unrecorded,
        }), 200
    except IntegrationMissingError as e:
        return jsonify({"error": str(e)}), 409
    except TokenDeviceError as e:
        return jsonify({"error": str(e)}), 502
    except Exception:
        current_app.logger.exception("Failed to audit WiFi tokens")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@tokens_bp.post("/<int:token_id>/disable")
@require_actor("DISABLE_WIFI_TOKEN")
def disable_token_route(token_id: int):
    """
    Disable a token on the device and locally.

    Request body:
    {
        "business_id": 1
    }
    """
    try:
        data = request.get_json() or {}
        business_id = data.get("business_id")
        if business_id is None:
            return jsonify({"error": "business_id required"}), 400

        token = token_service.disable_token(token_id, business_id)
        return jsonify({"token": token.to_dict()}), 200

    except TokenNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except TokenDeviceError as e:
        return jsonify({"error": str(e)}), 502
    except TokenServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to disable WiFi token")
        return jsonify({"error": "Internal server error"}), 500


@tokens_bp.post("/purge")
@require_actor("PURGE_WIFI_TOKENS")
def purge_tokens_route():
    """
    Purge unsold (AVAILABLE) tokens. Package configuration is kept.

    Request body:
    {
        "business_id": 1,
        "token_ids": [10, 11]
    }
    """
    try:
        data = request.get_json() or {}
        business_id = data.get("business_id")
        token_ids = data.get("token_ids") or []
        if business_id is None or not token_ids:
            return jsonify({"error": "business_id and token_ids required"}), 400

        purged = token_service.purge_available_tokens(business_id, token_ids)
        return jsonify({"purged": purged}), 200

    except TokenNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except TokenDeviceError as e:
        return jsonify({"error": str(e)}), 502
    except TokenServiceError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to purge WiFi tokens")
        return jsonify({"error": "Internal server error"}), 500
