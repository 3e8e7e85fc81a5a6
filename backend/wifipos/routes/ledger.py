# Overview: Flask API routes for expense-account ledgers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import ledger_service
from ..services.ledger_service import LedgerError
from ..decorators import require_actor


ledger_bp = Blueprint("expense_accounts", __name__, url_prefix="/api/expense-accounts")


@ledger_bp.get("/<int:account_id>")
@require_actor("VIEW_EXPENSE_ACCOUNTS")
def get_account_route(account_id: int):
    """Account with cached and recomputed balances side by side."""
    try:
        return jsonify(ledger_service.get_account_summary(account_id)), 200
    except LedgerError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load expense account")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/<int:account_id>/payments")
@require_actor("PAY_FROM_EXPENSE_ACCOUNT")
def add_payment_route(account_id: int):
    """
    Pay out of an expense account.

    Request body:
    {
        "amount_cents": 1500,
        "payee": "ISP Ltd",  (optional)
        "category": "INTERNET",  (optional)
        "description": "..."  (optional)
    }

    Returns:
        201: payment and the new balance
        400: invalid amount or insufficient funds
    """
    try:
        data = request.get_json() or {}
        amount_cents = data.get("amount_cents")
        if amount_cents is None:
            return jsonify({"error": "amount_cents required"}), 400

        payment = ledger_service.record_payment(
            account_id=account_id,
            amount_cents=amount_cents,
            created_by=g.actor_id,
            payee=data.get("payee"),
            category=data.get("category"),
            description=data.get("description"),
        )
        summary = ledger_service.get_account_summary(account_id)
        return jsonify({
            "payment": payment.to_dict(),
            "balance_cents": summary["account"]["balance_cents"],
        }), 201

    except LedgerError as e:
        if str(e).endswith("not found"):
            return jsonify({"error": str(e)}), 404
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record expense payment")
        return jsonify({"error": "Internal server error"}), 500
