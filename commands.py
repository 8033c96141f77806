"""Flask CLI commands (``flask --app app <command>``)."""

from __future__ import annotations

import logging

import click
from flask import current_app
from flask.cli import with_appcontext
from werkzeug.security import generate_password_hash

from extensions import db
from models import User
from services.billing import get_default_plan
from services.notifications import NotificationService
from services.plans import seed_default_plans
from services.sweeper import ExpirationSweeper

logger = logging.getLogger("cron")


@click.command("expire-subscriptions")
@with_appcontext
def expire_subscriptions_command():
    """Run the daily expiration sweep once."""
    app_cfg = current_app.config["APP_CONFIG"]
    scheduler_cfg = current_app.config["SCHEDULER_CONFIG"]
    sweeper = ExpirationSweeper(
        db.session,
        NotificationService(db.session, app_cfg.currency),
        default_plan_name=app_cfg.default_plan_name,
        tz_name=scheduler_cfg.timezone,
        warning_days=scheduler_cfg.expiry_warning_days,
    )
    report = sweeper.run()
    click.echo(
        f"Expired: {report.expired}, warned: {report.warned}, "
        f"devices disabled: {report.devices_disabled}, errors: {len(report.errors)}"
    )
    if report.errors:
        logger.error("Expiration sweep finished with %s errors", len(report.errors))
        raise SystemExit(1)


@click.command("seed-plans")
@with_appcontext
def seed_plans_command():
    """Create the default subscription plans if the catalog is empty."""
    added = seed_default_plans(db.session)
    click.echo(f"Seeded {added} plans." if added else "Plans already present, nothing to do.")


@click.command("create-admin")
@click.argument("email")
@click.option("--name", default="Administrator", show_default=True)
@click.password_option()
@with_appcontext
def create_admin_command(email, name, password):
    """Create an admin user, or promote an existing one."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if user:
        user.is_admin = True
        user.password_hash = generate_password_hash(password)
        click.echo(f"Promoted {email} to admin.")
    else:
        default_plan = get_default_plan(db.session, current_app.config["APP_CONFIG"].default_plan_name)
        db.session.add(
            User(
                name=name,
                email=email,
                password_hash=generate_password_hash(password),
                is_admin=True,
                subscription_id=default_plan.id if default_plan else None,
            )
        )
        click.echo(f"Created admin {email}.")
    db.session.commit()


ALL_COMMANDS = [expire_subscriptions_command, seed_plans_command, create_admin_command]


def register_commands(app):
    for command in ALL_COMMANDS:
        app.cli.add_command(command)
