# Overview: Flask CLI command group for store bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init
#   Create missing tables on all three stores (idempotent).
# - python -m flask ledger stats
#   Print catalog statistics and the next sales invoice number.
# - python -m flask ledger export-products --out products.json
#   Write a JSON backup of the product catalog (stdout when --out is omitted).
# - python -m flask ledger import-products products.json
#   Restore products from a backup; all-or-nothing.
# - python -m flask ledger reconcile-stock [--dry-run]
#   Re-apply the stock step of purchase returns whose stock sync failed.
# - python -m flask ledger next-invoice
#   Show the next sales invoice number without allocating it.
# - python -m flask ledger serve --port 5000
#   Check every store, then run the local HTTP surface.

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .errors import LedgerError, UninitializedError
from .extensions import db
from .services import purchase_service, sales_service, stock_service


@click.group('ledger')
def ledger_group():
    """Stock ledger and invoice store commands."""
    pass


def _verify_stores() -> None:
    for bind_key in (None, "purchases", "sales"):
        try:
            with db.engines[bind_key].connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise UninitializedError(f"store {bind_key or 'catalog'} is not available: {exc}") from exc


@ledger_group.command('init')
@with_appcontext
def init_stores():
    """Create missing tables on every store."""
    try:
        db.create_all()
    except SQLAlchemyError as exc:
        raise click.ClickException(f"Store initialization failed: {exc}")
    click.echo("OK Stores initialized (catalog, purchases, sales)")


@ledger_group.command('stats')
@with_appcontext
def show_stats():
    """Print catalog statistics."""
    stats = stock_service.inventory_stats()
    width = max(len(k) for k in stats)
    for key, value in stats.items():
        click.echo(f"{key.ljust(width)}  {value}")
    click.echo(f"{'nextInvoiceNo'.ljust(width)}  {sales_service.peek_next_invoice_number()}")
    pending = purchase_service.pending_stock_reconciliations()
    if pending:
        click.echo(f"WARN {len(pending)} purchase return(s) awaiting stock reconciliation")


@ledger_group.command('export-products')
@click.option('--out', 'out_path', type=click.Path(dir_okay=False, writable=True), help='Output file')
@with_appcontext
def export_products_cli(out_path):
    """Write the catalog as JSON."""
    payload = stock_service.export_products()
    if not out_path:
        click.echo(payload)
        return
    with open(out_path, "w", encoding="utf-8") as fh:
        fh.write(payload)
    click.echo(f"Exported catalog to {out_path}")


@ledger_group.command('import-products')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_products_cli(path):
    """Restore products from a JSON backup (replaces rows by id)."""
    with open(path, "r", encoding="utf-8") as fh:
        payload = fh.read()
    try:
        result = stock_service.import_products(payload)
    except LedgerError as e:
        raise click.ClickException(f"Import failed, nothing applied: {e}")
    click.echo(f"Imported {result['imported']} product(s)")


@ledger_group.command('reconcile-stock')
@click.option('--dry-run', is_flag=True, help='List pending returns without touching stock')
@with_appcontext
def reconcile_stock(dry_run):
    """Re-drive the stock step of purchase returns that did not complete."""
    pending = purchase_service.pending_stock_reconciliations()
    if not pending:
        click.echo("Nothing to reconcile.")
        return

    failed = 0
    for ret in pending:
        label = f"{ret['returnNo']} ({ret['stockSyncStatus']})"
        if dry_run:
            click.echo(f"  {label}: {ret.get('stockSyncError') or 'not attempted'}")
            continue
        result = purchase_service.retry_stock_sync(ret["id"])
        if result["status"] == purchase_service.SYNC_APPLIED:
            click.echo(f"  OK   {label}")
        else:
            failed += 1
            click.echo(f"  FAIL {label}")

    if failed:
        raise click.ClickException(f"{failed} return(s) still not reconciled")


@ledger_group.command('next-invoice')
@with_appcontext
def next_invoice():
    """Show the next sales invoice number (does not allocate it)."""
    click.echo(sales_service.peek_next_invoice_number())


@ledger_group.command('serve')
@click.option('--host', default='127.0.0.1', show_default=True)
@click.option('--port', type=int, default=5000, show_default=True)
@with_appcontext
def serve(host, port):
    """Refuse to start unless every store answers."""
    try:
        _verify_stores()
    except UninitializedError as e:
        current_app.logger.critical("%s", e)
        raise click.ClickException(str(e))
    current_app.run(host=host, port=port)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
