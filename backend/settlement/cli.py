import json

import click
from flask.cli import with_appcontext

from settlement.jobs.ledger_backfill import backfill_ledger
from settlement.jobs.payout_retrier import run_payout_retries
from settlement.jobs.settlement_reconciler import reconcile_settlements


def _echo(result: dict) -> None:
    click.echo(json.dumps(result, indent=2, default=str))


@click.command("retry-payouts")
@click.option("--limit", type=int, default=None, help="Max obligations to dispatch this run.")
@with_appcontext
def retry_payouts_command(limit):
    """Dispatch pending and failed payouts (cron)."""
    _echo(run_payout_retries(limit=limit, actor="cli"))


@click.command("backfill-ledger")
@click.option("--dry-run", is_flag=True, help="Report what would be written without writing.")
@click.option("--limit", type=int, default=5000)
@with_appcontext
def backfill_ledger_command(dry_run, limit):
    """Create ledger entries for historical orders."""
    _echo(backfill_ledger(dry_run=dry_run, limit=limit, actor="cli"))


@click.command("reconcile-settlements")
@click.option("--limit", type=int, default=200)
@with_appcontext
def reconcile_settlements_command(limit):
    """Rebuild missing obligations/ledger rows and report stuck payouts."""
    _echo(reconcile_settlements(limit=limit, actor="cli"))


def register_cli(app) -> None:
    app.cli.add_command(retry_payouts_command)
    app.cli.add_command(backfill_ledger_command)
    app.cli.add_command(reconcile_settlements_command)
