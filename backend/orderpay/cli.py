# Overview: Flask CLI command groups for bootstrap, catalog sync, and ledger inspection.

# backend/orderpay/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` in deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog sync
#   Fetch the item API and upsert every product.
#
# Ledger inspection:
# - python -m flask ledger history --uid u1 --limit 20
#   Show a user's balance and recent history rows.
#
# Consumer identity (local testing):
# - python -m flask identity issue-token --uid u1
#   Print a signed identity token for the Authorization: Bearer header.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import catalog_service, identity_service, ledger_service
from .services.catalog_service import UpstreamUnavailableError
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# CATALOG COMMANDS
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('sync')
@with_appcontext
def sync_catalog_cli():
    """Fetch the item API and upsert products."""
    try:
        snapshot = catalog_service.sync_catalog()
    except UpstreamUnavailableError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Synced {len(snapshot)} products")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Prepaid balance inspection commands."""


@ledger_group.command('history')
@click.option('--uid', required=True, help='External identity of the account')
@click.option('--limit', type=int, default=20, help='Max rows to show')
@with_appcontext
def ledger_history(uid, limit):
    """Show a user's balance and recent history rows."""
    user = db.session.query(User).filter_by(uid=uid).first()
    if not user:
        click.echo(f"FAIL User {uid} not found")
        return

    rows = ledger_service.get_history(uid, limit=limit)

    click.echo(f"\nUser {user.uid} (ID: {user.id}) balance: {user.balance}")
    click.echo("=" * 80)
    click.echo(f"{'Created':<22} {'Type':<10} {'Amount':>10}  {'Transaction'}")
    click.echo("=" * 80)
    for row in rows:
        click.echo(
            f"{to_utc_z(row.created_at) or '-':<22} {row.transaction_type:<10} "
            f"{row.amount:>10}  {row.transaction_id or '-'}"
        )
    click.echo("=" * 80 + "\n")


# =============================================================================
# IDENTITY COMMANDS
# =============================================================================

@click.group('identity')
def identity_group():
    """Consumer identity token commands."""


@identity_group.command('issue-token')
@click.option('--uid', required=True, help='External identity to embed')
@with_appcontext
def issue_token(uid):
    """Print a signed identity token."""
    click.echo(identity_service.issue_identity_token(uid))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(identity_group)
