# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
#
# User inspection/bootstrap:
# - python -m flask users create-root --username root --name "Vendor" --password "Password123!"
#   Create the software vendor account (root). Root operates no store.
# - python -m flask users list [--role admin]
#   List accounts with role, store and status.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --older-than-days 30
#   Delete expired or revoked session tokens older than the cutoff.

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .models import User
from .models.auth import ROLES, ROLE_ROOT
from .services import session_service, user_service
from .services.concurrency import atomic


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create database tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-root')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_root_cli(username, name, password):
    """
    Create a root (software vendor) account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        with atomic():
            user = user_service.build_user(
                username=username,
                name=name,
                password=password,
                role=ROLE_ROOT,
            )
    except ValidationError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created root user: {user.username} (ID: {user.id})")


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role and store."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<25} {'Role':<10} {'Store':<7} {'Status'}")
    click.echo("=" * 80)

    for user in users:
        store = str(user.store_id) if user.store_id else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.name:<25} {user.role:<10} {store:<7} {user.status}")

    click.echo("=" * 80 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """Delete expired or revoked sessions older than the cutoff."""
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} sessions older than {older_than_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
