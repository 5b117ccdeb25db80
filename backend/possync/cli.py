# Overview: Flask CLI command groups for bootstrap and upstream synchronization.

# backend/possync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Upstream synchronization:
# - python -m flask sync orders [--limit 100]
#   One reconciliation pass: push unsynced orders upstream.
# - python -m flask sync products
#   Replace the product cache with the full upstream catalog.
# - python -m flask sync customers
#   Replace the customer cache with the full upstream customer list.
# - python -m flask sync worker [--interval 60]
#   Run reconciliation passes forever (Ctrl+C to stop).

import threading

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .services import catalog_sync_service, order_service, sync_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including unsynced orders!
    """
    if not yes:
        pending = order_service.count_unsynced_orders()
        if pending:
            click.echo(f"WARN {pending} orders have not been synced upstream yet.")
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('sync')
def sync_group():
    """Upstream synchronization commands."""


@sync_group.command('orders')
@click.option('--limit', type=int, default=None, help='Push at most this many orders')
@with_appcontext
def sync_orders(limit):
    """Push unsynced orders upstream (one pass)."""
    try:
        results = sync_service.reconcile_all(limit=limit)
    except PosError as e:
        raise click.ClickException(str(e))

    if not results:
        click.echo("No unsynced orders.")
        return

    for r in results:
        if r.status == sync_service.RESULT_SYNCED:
            suffix = " (existing)" if r.deduplicated else ""
            click.echo(f"PASS {r.order_number} -> upstream #{r.upstream_order_id}{suffix}")
        else:
            click.echo(f"FAIL {r.order_number or r.order_id}: {r.status} {r.error or ''}".rstrip())

    synced = sum(1 for r in results if r.status == sync_service.RESULT_SYNCED)
    click.echo(f"\n{synced}/{len(results)} orders synced.")


@sync_group.command('products')
@with_appcontext
def sync_products():
    """Replace the product cache with the upstream catalog."""
    try:
        count = catalog_sync_service.sync_products()
    except PosError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Synced {count} products.")


@sync_group.command('customers')
@with_appcontext
def sync_customers():
    """Replace the customer cache with the upstream customer list."""
    try:
        count = catalog_sync_service.sync_customers()
    except PosError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Synced {count} customers.")


@sync_group.command('worker')
@click.option('--interval', type=float, default=None, help='Seconds between passes (default SYNC_INTERVAL_SECONDS)')
@click.option('--max-passes', type=int, default=None, help='Stop after this many passes')
@with_appcontext
def sync_worker(interval, max_passes):
    """Run order reconciliation periodically."""
    if interval is None:
        interval = float(current_app.config.get("SYNC_INTERVAL_SECONDS", 60))
    if interval <= 0:
        raise click.BadParameter("interval must be > 0", param_hint="--interval")

    click.echo(f"[sync] starting worker, interval={interval}s")
    stop_event = threading.Event()
    try:
        passes = sync_service.run_periodic(interval, stop_event, max_passes=max_passes)
    except KeyboardInterrupt:
        stop_event.set()
        click.echo("[sync] exiting on Ctrl+C")
        return
    click.echo(f"[sync] stopped after {passes} passes")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sync_group)
