# Overview: Service-layer operations for expense-account ledgers; balance derivation and ledger writes.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import ExpenseAccount, ExpenseAccountDeposit, ExpenseAccountPayment
from ..models.ledger import DEPOSIT_SOURCES
from wifipos.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
"""
Expense Account Ledger Invariants (authoritative)

- Deposits and payments are append-only; no updates, no deletes.
- balance_cents = SUM(deposits.amount_cents) - SUM(payments.amount_cents),
  recomputed from the rows every time, never incremented.
- The recompute runs inside the same DB transaction as the deposit or
  payment that triggered it.
- A negative recomputed balance is a consistency violation upstream and is
  raised, never clamped to zero.
"""

TOKEN_SALES_ACCOUNT_NAME = "WiFi Token Sales"


class LedgerError(Exception):
    """Raised for ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class LedgerConsistencyError(LedgerError):
    """Raised when the ledger rows add up to an impossible balance."""
    pass


def _sum_deposits(account_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(ExpenseAccountDeposit.amount_cents), 0)
    ).filter(ExpenseAccountDeposit.expense_account_id == account_id).scalar()
    return int(total or 0)


def _sum_payments(account_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(ExpenseAccountPayment.amount_cents), 0)
    ).filter(ExpenseAccountPayment.expense_account_id == account_id).scalar()
    return int(total or 0)


def calculate_balance(account_id: int) -> int:
    """Pure aggregate: deposits minus payments, from the rows."""
    return _sum_deposits(account_id) - _sum_payments(account_id)


def recompute_balance(account_id: int) -> int:
    """
    Recompute and store the account's cached balance.

    Does not commit: the caller's transaction owns the ledger row that
    changed, and the balance must land with it.

    Raises:
        LedgerError: account not found
        LedgerConsistencyError: deposits minus payments is negative
    """
    account = db.session.get(ExpenseAccount, account_id)
    if not account:
        raise LedgerError(f"Expense account {account_id} not found")

    db.session.flush()
    balance = calculate_balance(account_id)
    if balance < 0:
        raise LedgerConsistencyError(
            f"Expense account {account_id} ledger sums to a negative balance",
            details={"account_id": account_id, "balance_cents": balance},
        )

    account.balance_cents = balance
    db.session.flush()
    return balance


def get_or_create_token_sales_account(business_id: int) -> ExpenseAccount:
    """
    The account WiFi token sales are deposited into.

    Safe to call repeatedly (idempotent). Flushes, does not commit.
    """
    account = db.session.query(ExpenseAccount).filter_by(
        business_id=business_id,
        account_name=TOKEN_SALES_ACCOUNT_NAME,
    ).first()
    if account:
        return account

    account = ExpenseAccount(
        business_id=business_id,
        account_number=f"WIFI-{business_id:05d}",
        account_name=TOKEN_SALES_ACCOUNT_NAME,
        balance_cents=0,
    )
    db.session.add(account)
    db.session.flush()
    return account


def record_deposit(
    *,
    account_id: int,
    amount_cents: int,
    source_type: str,
    created_by: str,
    description: str | None = None,
    token_sale_id: int | None = None,
    commit: bool = True,
) -> ExpenseAccountDeposit:
    """
    Append a deposit and recompute the balance in the same transaction.

    With commit=False the caller is already inside a unit of work (token
    issuance) and commits deposit, sale and token together.
    """
    if amount_cents is None or amount_cents <= 0:
        raise LedgerError("Deposit amount must be positive")
    if source_type not in DEPOSIT_SOURCES:
        raise LedgerError(f"Invalid deposit source: {source_type}. Must be one of {list(DEPOSIT_SOURCES)}")

    def _op():
        account = lock_for_update(db.session.query(ExpenseAccount).filter_by(id=account_id)).first()
        if not account:
            raise LedgerError(f"Expense account {account_id} not found")
        if not account.is_active:
            raise LedgerError("Cannot deposit into an inactive account")

        deposit = ExpenseAccountDeposit(
            expense_account_id=account_id,
            amount_cents=amount_cents,
            source_type=source_type,
            token_sale_id=token_sale_id,
            description=description,
            created_by=created_by,
            deposited_at=utcnow(),
        )
        db.session.add(deposit)
        db.session.flush()

        recompute_balance(account_id)

        if commit:
            db.session.commit()
        return deposit

    if commit:
        return run_with_retry(_op)
    return _op()


def record_payment(
    *,
    account_id: int,
    amount_cents: int,
    created_by: str,
    payee: str | None = None,
    category: str | None = None,
    description: str | None = None,
) -> ExpenseAccountPayment:
    """
    Append a payment out of the account and recompute the balance.

    Raises:
        LedgerError: amount invalid, account missing/inactive, or the payment
            exceeds the current balance
    """
    if amount_cents is None or amount_cents <= 0:
        raise LedgerError("Payment amount must be positive")

    def _op():
        account = lock_for_update(db.session.query(ExpenseAccount).filter_by(id=account_id)).first()
        if not account:
            raise LedgerError(f"Expense account {account_id} not found")
        if not account.is_active:
            raise LedgerError("Cannot pay from an inactive account")

        available = calculate_balance(account_id)
        if amount_cents > available:
            raise LedgerError(
                "Insufficient funds",
                details={"available_cents": available, "requested_cents": amount_cents},
            )

        payment = ExpenseAccountPayment(
            expense_account_id=account_id,
            amount_cents=amount_cents,
            payee=payee,
            category=category,
            description=description,
            created_by=created_by,
            paid_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        recompute_balance(account_id)

        db.session.commit()
        return payment

    return run_with_retry(_op)


def get_account_summary(account_id: int) -> dict:
    """Cached balance next to the from-scratch aggregate, for drift checks."""
    account = db.session.get(ExpenseAccount, account_id)
    if not account:
        raise LedgerError(f"Expense account {account_id} not found")

    deposits_total = _sum_deposits(account_id)
    payments_total = _sum_payments(account_id)
    return {
        "account": account.to_dict(),
        "deposits_total_cents": deposits_total,
        "payments_total_cents": payments_total,
        "calculated_balance_cents": deposits_total - payments_total,
        "balance_in_sync": account.balance_cents == deposits_total - payments_total,
        "deposit_count": db.session.query(ExpenseAccountDeposit).filter_by(expense_account_id=account_id).count(),
        "payment_count": db.session.query(ExpenseAccountPayment).filter_by(expense_account_id=account_id).count(),
    }
