# Overview: Flask CLI command groups for device setup, reconciliation, and token maintenance.

# backend/wifipos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Set DEVICE_CREDENTIAL_KEY (generate with: flask devices generate-key).
# - Use: python -m flask <group> <command> [options]
#
# Businesses:
# - python -m flask businesses create --name "Cafe Central" --code "CAFE"
#   Create a business (tenant root).
#
# Devices:
# - python -m flask devices generate-key
#   Print a fresh Fernet key for DEVICE_CREDENTIAL_KEY.
# - python -m flask devices register --family R710 --address 192.168.0.1 --username admin
#   Register a device (prompts for the admin password / API key, stored encrypted).
# - python -m flask devices bind --business-id 1 --device-id 2
#   Make a device the business's active device for its family.
# - python -m flask devices health-check [--device-id 2]
#   Probe one device, or every active device.
#
# Reconciliation:
# - python -m flask sync clients [--business-id 1]
#   Reconcile connected clients for one business, or all businesses with a portal.
#
# Tokens:
# - python -m flask tokens expire
#   Mark SOLD/ACTIVE tokens past their expiry as EXPIRED (cron-friendly).
# - python -m flask tokens audit --business-id 1
#   List guest passes on the device that have no local record.

import click
from cryptography.fernet import Fernet
from flask.cli import with_appcontext

from .extensions import db
from .models import Business
from .models.devices import DEVICE_FAMILIES
from .services import client_sync_service, device_service, token_service
from .services.client_sync_service import ClientSyncError
from .services.device_service import DeviceServiceError
from .services.token_issuance_service import TokenIssuanceError
from .services.token_service import TokenServiceError


@click.group('businesses')
def businesses_group():
    """Business management commands."""


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--code', required=True, help='Short unique code')
@with_appcontext
def create_business(name, code):
    existing = db.session.query(Business).filter_by(code=code).first()
    if existing:
        click.echo(f"WARN  Business '{code}' already exists (ID: {existing.id})")
        return
    business = Business(name=name, code=code, is_active=True)
    db.session.add(business)
    db.session.commit()
    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code})")


@click.group('devices')
def devices_group():
    """Device registry commands."""


@devices_group.command('generate-key')
def generate_key():
    """Print a new Fernet key suitable for DEVICE_CREDENTIAL_KEY."""
    click.echo(Fernet.generate_key().decode("utf-8"))


@devices_group.command('register')
@click.option('--family', type=click.Choice(DEVICE_FAMILIES), required=True)
@click.option('--address', required=True, help='Host or URL of the device')
@click.option('--username', 'admin_username', default=None, help='Admin username (R710)')
@click.option('--secret', prompt='Admin password / API key', hide_input=True)
@click.option('--description', default=None)
@with_appcontext
def register_device(family, address, admin_username, secret, description):
    try:
        device = device_service.register_device(
            device_family=family,
            address=address,
            admin_username=admin_username,
            secret=secret,
            description=description,
        )
    except DeviceServiceError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Registered {device.device_family} device {device.id} at {device.address}")


@devices_group.command('bind')
@click.option('--business-id', type=int, required=True)
@click.option('--device-id', type=int, required=True)
@with_appcontext
def bind_device(business_id, device_id):
    try:
        integration = device_service.bind_business(business_id, device_id)
    except DeviceServiceError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS Business {business_id} now uses device {device_id} for {integration.device_family}"
    )


@devices_group.command('health-check')
@click.option('--device-id', type=int, default=None, help='Check one device (default: all active)')
@with_appcontext
def health_check(device_id):
    try:
        if device_id is not None:
            devices = [device_service.check_device_health(device_id)]
        else:
            devices = device_service.check_all_devices()
    except DeviceServiceError as e:
        raise click.ClickException(str(e))

    if not devices:
        click.echo("No active devices registered.")
        return
    for device in devices:
        line = f"{device.id:>4}  {device.device_family:<6} {device.address:<30} {device.connection_status}"
        if device.last_error:
            line += f"  ({device.last_error})"
        click.echo(line)


@click.group('sync')
def sync_group():
    """Connected-client reconciliation commands."""


@sync_group.command('clients')
@click.option('--business-id', type=int, default=None, help='Sync one business (default: all)')
@with_appcontext
def sync_clients(business_id):
    """
    Reconcile connected clients against the portal.

    Pages are paced by CLIENT_SYNC_PAGE_DELAY_SECONDS, businesses by
    CLIENT_SYNC_BUSINESS_DELAY_SECONDS; a full run can take minutes.
    """
    if business_id is not None:
        try:
            result = client_sync_service.sync_business(business_id)
        except ClientSyncError as e:
            raise click.ClickException(str(e))
        click.echo(
            f"PASS Business {business_id}: {result.pages_fetched} pages, "
            f"{result.clients_updated} updated, {result.clients_removed} offline, "
            f"{result.tokens_unmatched} unmatched"
        )
        return

    summary = client_sync_service.sync_all()
    for result in summary.results:
        click.echo(
            f"PASS Business {result.business_id}: {result.pages_fetched} pages, "
            f"{result.clients_updated} updated, {result.clients_removed} offline, "
            f"{result.tokens_unmatched} unmatched"
        )
    for failed_id, message in summary.errors.items():
        click.echo(f"FAIL Business {failed_id}: {message}")
    click.echo(f"DONE {summary.businesses_synced} synced, {summary.businesses_failed} failed")


@click.group('tokens')
def tokens_group():
    """WiFi token maintenance commands."""


@tokens_group.command('expire')
@with_appcontext
def expire_tokens():
    expired = token_service.expire_tokens()
    click.echo(f"Expired {expired} tokens.")


@tokens_group.command('audit')
@click.option('--business-id', type=int, required=True)
@with_appcontext
def audit_tokens(business_id):
    """List guest passes present on the device with no local token row."""
    try:
        unrecorded = token_service.find_unrecorded_guest_passes(business_id)
    except (TokenIssuanceError, TokenServiceError) as e:
        raise click.ClickException(str(e))

    if not unrecorded:
        click.echo("PASS Every guest pass on the device has a local record.")
        return
    click.echo(f"WARN  {len(unrecorded)} guest passes have no local record:")
    for username in unrecorded:
        click.echo(f"  {username}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(businesses_group)
    app.cli.add_command(devices_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(tokens_group)
