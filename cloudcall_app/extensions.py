# cloudcall_app/extensions.py
# -*- coding: utf-8 -*-
from __future__ import annotations
import click
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import text


db = SQLAlchemy()
migrate = Migrate()
scheduler = BackgroundScheduler(daemon=True)

def init_extensions(app):
    # DB/Migrate
    db.init_app(app)
    migrate.init_app(app, db)

def init_scheduler(app):
    """Schedules the pending-subscription sweep against the gateway."""
    from .services.reconciliation import sync_subscriptions

    def _job():
        with app.app_context():
            sync_subscriptions()

    scheduler.add_job(
        _job,
        "interval",
        minutes=app.config.get("SUBSCRIPTION_SYNC_MINUTES", 60),
        id="sync_subscriptions",
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()

def register_cli(app):
    @app.cli.command("init-db")
    def init_db_cmd():
        """Creates the billing tables (DEV). For production use: flask db upgrade."""
        with app.app_context():
            # sanity check
            db.session.execute(text("SELECT 1"))
            db.create_all()
            click.echo("Tables created.")

    @app.cli.command("reconcile-subscriptions")
    @click.option("--limit", default=100, show_default=True, help="Max subscriptions per sweep.")
    def reconcile_subscriptions_cmd(limit):
        """Pulls gateway state for pending/past_due subscriptions."""
        from .services.reconciliation import sync_subscriptions
        with app.app_context():
            summary = sync_subscriptions(limit=limit)
            click.echo(
                f"checked={summary['checked']} updated={summary['updated']} errors={summary['errors']}"
            )
