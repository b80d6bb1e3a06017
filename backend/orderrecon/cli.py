# Overview: Flask CLI command group for inspecting and driving reconciliation.

# backend/orderrecon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to orderrecon (PowerShell: $env:FLASK_APP="orderrecon").
# - Use: python -m flask <group> <command> [options]
#
# Reconciliation:
# - python -m flask recon intents [--status PARTIAL] [--limit 20]
#   List saga intents (newest first).
# - python -m flask recon run [--limit 50]
#   Resume PARTIAL intents and stale PENDING intents.
# - python -m flask recon alerts
#   Show low / out-of-stock alerts from the inventory service.
# - python -m flask recon guard 42
#   Show the idempotency records (applied transitions) for an order.

import click
from flask.cli import with_appcontext

from .errors import ReconcileError
from .extensions import remote_services
from .services.idempotency_service import IdempotencyGuard
from .services.reconciliation_service import build_reconciler
from .services.stock_ledger_service import StockLedgerClient


@click.group('recon')
def recon_group():
    """Order reconciliation commands."""


@recon_group.command('intents')
@click.option('--status', type=click.Choice(['PENDING', 'COMPLETED', 'PARTIAL', 'ABORTED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max intents to show')
@with_appcontext
def list_intents_cli(status, limit):
    """
    List reconciliation intents.

    Example:
        flask recon intents
        flask recon intents --status PARTIAL
    """
    intents = build_reconciler().list_intents(status=status, limit=limit)

    if not intents:
        click.echo("No intents found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<6} {'Order':<12} {'Kind':<16} {'Transition':<28} {'Status':<10} {'Tries':<6} {'Last error'}")
    click.echo("="*110)

    for intent in intents:
        transition = f"{intent.from_value} -> {intent.to_value}"
        click.echo(
            f"{intent.id:<6} {intent.order_number or intent.order_id:<12} {intent.kind:<16} "
            f"{transition:<28} {intent.status:<10} {intent.attempts:<6} {intent.last_error or '-'}"
        )

    click.echo("="*110 + "\n")


@recon_group.command('run')
@click.option('--limit', type=int, default=None, help='Max intents to resume (default RECON_JOB_BATCH_SIZE)')
@with_appcontext
def run_cli(limit):
    """Resume PARTIAL and stale PENDING intents."""
    summary = build_reconciler().run_reconciliation(limit=limit)

    click.echo(
        f"Examined {summary['examined']}: {summary['completed']} completed, "
        f"{summary['partial']} still partial, {summary['aborted']} aborted"
    )
    for error in summary["errors"]:
        click.echo(f"FAIL intent {error['intent_id']}: {error['error']}")


@recon_group.command('alerts')
@with_appcontext
def alerts_cli():
    """Show low / out-of-stock alerts."""
    try:
        alerts = StockLedgerClient(remote_services.inventory).check_stock_alerts()
    except ReconcileError as e:
        click.echo(f"FAIL {e.message}")
        return

    if not alerts:
        click.echo("No stock alerts.")
        return

    for alert in alerts:
        click.echo(
            f"{alert.severity.upper():<9} {alert.product_id:<6} {alert.product_name:<30} "
            f"stock={alert.current_stock} min={alert.min_stock}"
        )


@recon_group.command('guard')
@click.argument('order_id', type=int)
@with_appcontext
def guard_cli(order_id):
    """Show applied transitions recorded for an order."""
    records = IdempotencyGuard().records_for(order_id)

    if not records:
        click.echo(f"No transitions recorded for order {order_id}.")
        return

    for record in records:
        state = "active" if record.is_active else "superseded"
        click.echo(
            f"{record.id:<6} {record.kind:<16} {record.from_value} -> {str(record.to_value):<12} "
            f"{state:<11} {record.applied_at.isoformat()}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(recon_group)
