from __future__ import annotations

from ..extensions import db
from wifipos.time_utils import to_utc_z


TOKEN_STATUS_AVAILABLE = "AVAILABLE"
TOKEN_STATUS_SOLD = "SOLD"
TOKEN_STATUS_ACTIVE = "ACTIVE"
TOKEN_STATUS_EXPIRED = "EXPIRED"
TOKEN_STATUS_DISABLED = "DISABLED"

SALE_CHANNEL_POS = "POS"
SALE_CHANNEL_DIRECT = "DIRECT"
SALE_CHANNELS = (SALE_CHANNEL_POS, SALE_CHANNEL_DIRECT)


class TokenPackageConfig(db.Model):
    """
    What a token buys: duration, device and bandwidth limits, price.

    duration_unit uses the platform vocabulary ("hour_Hours", "day_Days",
    "week_Weeks"); the issuance service maps it to the device vocabulary.
    Immutable once any token has been sold against it.
    """
    __tablename__ = "token_package_configs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    wlan_id = db.Column(db.Integer, db.ForeignKey("wlans.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    duration_value = db.Column(db.Integer, nullable=False)
    duration_unit = db.Column(db.String(20), nullable=False)
    device_limit = db.Column(db.Integer, nullable=False, default=1)
    bandwidth_down_mb = db.Column(db.Integer, nullable=True)
    bandwidth_up_mb = db.Column(db.Integer, nullable=True)
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    wlan = db.relationship("Wlan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "wlan_id": self.wlan_id,
            "name": self.name,
            "description": self.description,
            "duration_value": self.duration_value,
            "duration_unit": self.duration_unit,
            "device_limit": self.device_limit,
            "bandwidth_down_mb": self.bandwidth_down_mb,
            "bandwidth_up_mb": self.bandwidth_up_mb,
            "base_price_cents": self.base_price_cents,
            "is_active": self.is_active,
            "display_order": self.display_order,
        }


class WifiToken(db.Model):
    """
    A credential minted on a device.

    Lifecycle: AVAILABLE -> SOLD -> ACTIVE -> EXPIRED, or DISABLED.
    Rows may only be purged while AVAILABLE.
    """
    __tablename__ = "wifi_tokens"
    __table_args__ = (
        db.UniqueConstraint("business_id", "device_family", "username", name="uq_wifi_tokens_business_family_username"),
        db.Index("ix_wifi_tokens_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    token_package_id = db.Column(db.Integer, db.ForeignKey("token_package_configs.id"), nullable=False, index=True)
    device_registry_id = db.Column(db.Integer, db.ForeignKey("device_registry.id"), nullable=True, index=True)
    device_family = db.Column(db.String(16), nullable=False)

    username = db.Column(db.String(64), nullable=False)
    password = db.Column(db.String(64), nullable=True)
    # Object id the device assigned at mint time; needed to delete it later
    device_object_id = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=TOKEN_STATUS_AVAILABLE)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    first_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    package = db.relationship("TokenPackageConfig", backref=db.backref("tokens", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_password: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "token_package_id": self.token_package_id,
            "device_registry_id": self.device_registry_id,
            "device_family": self.device_family,
            "username": self.username,
            "status": self.status,
            "expires_at": to_utc_z(self.expires_at),
            "first_used_at": to_utc_z(self.first_used_at),
            "last_synced_at": to_utc_z(self.last_synced_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_password:
            data["password"] = self.password
        return data


class TokenSale(db.Model):
    """Immutable sale event; exactly one per sold token."""
    __tablename__ = "token_sales"
    __table_args__ = (
        db.UniqueConstraint("token_id", name="uq_token_sales_token"),
        db.Index("ix_token_sales_business_sold_at", "business_id", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    token_id = db.Column(db.Integer, db.ForeignKey("wifi_tokens.id"), nullable=False)
    expense_account_id = db.Column(db.Integer, db.ForeignKey("expense_accounts.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    sale_channel = db.Column(db.String(16), nullable=False, default=SALE_CHANNEL_POS)
    sold_by = db.Column(db.String(64), nullable=False)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    token = db.relationship("WifiToken", backref=db.backref("sale", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "token_id": self.token_id,
            "expense_account_id": self.expense_account_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "sale_channel": self.sale_channel,
            "sold_by": self.sold_by,
            "sold_at": to_utc_z(self.sold_at),
        }


class ConnectedClientProjection(db.Model):
    """
    Local mirror of a client device seen on a portal token.

    Keyed by (token, normalized MAC). Rows are never deleted by the sync;
    they are flipped offline when the device stops reporting them.
    """
    __tablename__ = "connected_clients"
    __table_args__ = (
        db.UniqueConstraint("token_id", "mac_address", name="uq_connected_clients_token_mac"),
        db.Index("ix_connected_clients_business_online", "business_id", "is_online"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    token_id = db.Column(db.Integer, db.ForeignKey("wifi_tokens.id"), nullable=False, index=True)
    mac_address = db.Column(db.String(17), nullable=False)

    ip_address = db.Column(db.String(45), nullable=True)
    hostname = db.Column(db.String(255), nullable=True)
    device_type = db.Column(db.String(100), nullable=True)
    is_online = db.Column(db.Boolean, nullable=False, default=True)

    bandwidth_used_down_mb = db.Column(db.Float, nullable=False, default=0)
    bandwidth_used_up_mb = db.Column(db.Float, nullable=False, default=0)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    first_seen_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_synced_at = db.Column(db.DateTime(timezone=True), nullable=False)

    token = db.relationship("WifiToken", backref=db.backref("connected_clients", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "token_id": self.token_id,
            "mac_address": self.mac_address,
            "ip_address": self.ip_address,
            "hostname": self.hostname,
            "device_type": self.device_type,
            "is_online": self.is_online,
            "bandwidth_used_down_mb": self.bandwidth_used_down_mb,
            "bandwidth_used_up_mb": self.bandwidth_used_up_mb,
            "usage_count": self.usage_count,
            "first_seen_at": to_utc_z(self.first_seen_at),
            "last_seen_at": to_utc_z(self.last_seen_at),
            "last_synced_at": to_utc_z(self.last_synced_at),
        }
