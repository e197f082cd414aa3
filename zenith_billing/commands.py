import json

import click
from flask import current_app

from zenith_billing.billing import flutterwave_events, stripe_events
from zenith_billing.billing.reconciliation import incomplete_logs, retry_incomplete
from zenith_billing.extensions import db
from zenith_billing.services.providers import get_providers


def reconciliation_rebuilders():
    """provider -> callable(log) recreating the saga for a stored reconciliation"""
    config = current_app.config
    stripe_service = get_providers().stripe
    price_plans = stripe_events.price_plans(config)
    deduplicate = config.get("WEBHOOK_DEDUPLICATE_PAYMENTS", True)
    return {
        flutterwave_events.PROVIDER: lambda log: flutterwave_events.rebuild_saga(log, deduplicate=deduplicate),
        stripe_events.PROVIDER: lambda log: stripe_events.rebuild_saga(log, stripe_service, price_plans),
    }


def register_commands(app):

    @app.cli.command("init-db")
    def init_db():
        """Create all database tables"""
        db.create_all()
        click.echo("Database initialized")

    @app.cli.command("reconcile-report")
    @click.option("--limit", default=100, show_default=True, help="Maximum number of logs to list")
    def reconcile_report(limit):
        """List webhook reconciliations that finished with failed steps"""
        logs = incomplete_logs(limit)
        if not logs:
            click.echo("No partial reconciliations")
            return
        for log in logs:
            click.echo(json.dumps({**log.to_dict(), "failed_steps": log.failed_steps()}))

    @app.cli.command("reconcile-retry")
    @click.option("--limit", default=100, show_default=True, help="Maximum number of logs to retry")
    def reconcile_retry(limit):
        """Re-run the failed steps of partial reconciliations"""
        results = retry_incomplete(reconciliation_rebuilders(), limit=limit)
        repaired = sum(1 for r in results if r.complete)
        click.echo(f"Retried {len(results)} reconciliation(s), {repaired} now complete")
        for result in results:
            if not result.complete:
                click.echo(f"  log {result.log_id}: still failing {', '.join(result.failed_steps)}")

    return app
