from __future__ import annotations

from ..extensions import db
from wifipos.time_utils import to_utc_z


DEVICE_FAMILY_R710 = "R710"
DEVICE_FAMILY_ESP32 = "ESP32"
DEVICE_FAMILIES = (DEVICE_FAMILY_R710, DEVICE_FAMILY_ESP32)

CONNECTION_CONNECTED = "CONNECTED"
CONNECTION_DISCONNECTED = "DISCONNECTED"
CONNECTION_UNKNOWN = "UNKNOWN"


class DeviceRegistry(db.Model):
    """
    A physical access point or captive-portal controller.

    R710 admin consoles store the admin password in encrypted_secret;
    ESP32 portals store their API key there. Plaintext never touches the
    database.
    """
    __tablename__ = "device_registry"
    __table_args__ = (
        db.UniqueConstraint("device_family", "address", name="uq_device_registry_family_address"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    device_family = db.Column(db.String(16), nullable=False, index=True)
    address = db.Column(db.String(255), nullable=False)
    admin_username = db.Column(db.String(255), nullable=True)
    encrypted_secret = db.Column(db.Text, nullable=False)

    model = db.Column(db.String(50), nullable=True)
    firmware_version = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Health
    connection_status = db.Column(db.String(16), nullable=False, default=CONNECTION_UNKNOWN)
    last_health_check = db.Column(db.DateTime(timezone=True), nullable=True)
    last_connected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<DeviceRegistry id={self.id} family={self.device_family} address={self.address!r}>"

    def to_dict(self) -> dict:
        # encrypted_secret is never serialized
        return {
            "id": self.id,
            "device_family": self.device_family,
            "address": self.address,
            "admin_username": self.admin_username,
            "model": self.model,
            "firmware_version": self.firmware_version,
            "description": self.description,
            "is_active": self.is_active,
            "connection_status": self.connection_status,
            "last_health_check": to_utc_z(self.last_health_check),
            "last_connected_at": to_utc_z(self.last_connected_at),
            "last_error": self.last_error,
        }


class BusinessIntegration(db.Model):
    """
    Binds one business to one device.

    At most one active integration per business per device family; the
    device service deactivates the previous binding when a new one is made.
    """
    __tablename__ = "business_integrations"
    __table_args__ = (
        db.Index("ix_business_integrations_lookup", "business_id", "device_family", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    device_registry_id = db.Column(db.Integer, db.ForeignKey("device_registry.id"), nullable=False, index=True)
    device_family = db.Column(db.String(16), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    business = db.relationship("Business", backref=db.backref("integrations", lazy=True))
    device = db.relationship("DeviceRegistry", backref=db.backref("integrations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "device_registry_id": self.device_registry_id,
            "device_family": self.device_family,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Wlan(db.Model):
    """Guest network on an R710 device that tokens are minted for."""
    __tablename__ = "wlans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    device_registry_id = db.Column(db.Integer, db.ForeignKey("device_registry.id"), nullable=False, index=True)

    # Name the device knows the WLAN by, and the broadcast SSID
    device_wlan_name = db.Column(db.String(255), nullable=False)
    ssid = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    device = db.relationship("DeviceRegistry")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "device_registry_id": self.device_registry_id,
            "device_wlan_name": self.device_wlan_name,
            "ssid": self.ssid,
            "is_active": self.is_active,
        }


class MacAclEntry(db.Model):
    """Hardware address blocked on a business's admin-console device."""
    __tablename__ = "mac_acl_entries"
    __table_args__ = (
        db.UniqueConstraint("business_id", "device_registry_id", "mac_address", name="uq_mac_acl_business_device_mac"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    device_registry_id = db.Column(db.Integer, db.ForeignKey("device_registry.id"), nullable=False, index=True)
    mac_address = db.Column(db.String(17), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "device_registry_id": self.device_registry_id,
            "mac_address": self.mac_address,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
