from __future__ import annotations

from ..extensions import db
from wifipos.time_utils import to_utc_z


DEPOSIT_SOURCE_TOKEN_SALE = "TOKEN_SALE"
DEPOSIT_SOURCE_MANUAL = "MANUAL"
DEPOSIT_SOURCES = (DEPOSIT_SOURCE_TOKEN_SALE, DEPOSIT_SOURCE_MANUAL)


class ExpenseAccount(db.Model):
    """
    Business money account backed by an append-only ledger.

    WHY: balance_cents is a cached aggregate of deposits minus payments.
    It is only ever written by ledger_service.recompute_balance, inside the
    same transaction as the ledger row that changed it.
    """
    __tablename__ = "expense_accounts"
    __table_args__ = (
        db.UniqueConstraint("business_id", "account_number", name="uq_expense_accounts_business_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    account_number = db.Column(db.String(64), nullable=False)
    account_name = db.Column(db.String(255), nullable=False)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "balance_cents": self.balance_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseAccountDeposit(db.Model):
    """Money into an account. Never updated or deleted."""
    __tablename__ = "expense_account_deposits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    expense_account_id = db.Column(db.Integer, db.ForeignKey("expense_accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    source_type = db.Column(db.String(32), nullable=False, index=True)
    token_sale_id = db.Column(db.Integer, db.ForeignKey("token_sales.id"), nullable=True, index=True)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False)
    deposited_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    account = db.relationship("ExpenseAccount", backref=db.backref("deposits", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_account_id": self.expense_account_id,
            "amount_cents": self.amount_cents,
            "source_type": self.source_type,
            "token_sale_id": self.token_sale_id,
            "description": self.description,
            "created_by": self.created_by,
            "deposited_at": to_utc_z(self.deposited_at),
        }


class ExpenseAccountPayment(db.Model):
    """Money out of an account. Never updated or deleted."""
    __tablename__ = "expense_account_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    expense_account_id = db.Column(db.Integer, db.ForeignKey("expense_accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payee = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    account = db.relationship("ExpenseAccount", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_account_id": self.expense_account_id,
            "amount_cents": self.amount_cents,
            "payee": self.payee,
            "category": self.category,
            "description": self.description,
            "created_by": self.created_by,
            "paid_at": to_utc_z(self.paid_at),
        }
