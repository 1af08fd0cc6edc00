# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
#
# Users:
# - python -m flask users create --email admin@shop.local --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users set-role admin@shop.local admin
#   Change a user's role.
#
# Permissions:
# - python -m flask perms list [--role user]
#   List permission codes by category (optionally only those a role holds).
#
# Maintenance:
# - python -m flask maintenance backfill-zero-sale-transactions
#   One-time repair: give zero-amount sale ledger entries their sale's total.
# - python -m flask maintenance mark-overdue [--date 2024-06-01]
#   Move pending installments due before the date to overdue (schedule daily).
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLES, ROLE_USER
from .services.auth_service import create_user, set_role, PasswordValidationError
from .permissions import DEFAULT_ROLE_PERMISSIONS, get_permissions_by_category
from .services import maintenance_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("PASS Database tables created")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default=ROLE_USER, show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, full_name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(email=email, password=password, full_name=full_name, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<20} {'Role':<8} {'Active'}")
    click.echo("="*80)

    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<35} {(user.full_name or '-'):<20} {user.role:<8} "
            f"{'Yes' if user.is_active else 'No'}"
        )

    click.echo("="*80 + "\n")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(list(ROLES)))
@with_appcontext
def set_role_cli(email, role):
    """Change a user's role."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    set_role(user.id, role)
    click.echo(f"PASS {user.email} is now {role}")


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), default=None, help='Only codes granted to this role')
@with_appcontext
def list_perms(role):
    """List permissions grouped by category."""
    granted = DEFAULT_ROLE_PERMISSIONS.get(role) if role else None

    for category, perms in get_permissions_by_category().items():
        rows = [p for p in perms if granted is None or p["code"] in granted]
        if not rows:
            continue
        click.echo(f"\n{category}")
        for p in rows:
            click.echo(f"  {p['code']:<22} {p['description']}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('backfill-zero-sale-transactions')
@with_appcontext
def backfill_zero_sale_transactions_cli():
    """Fix sale ledger entries recorded with amount 0."""
    fixed = maintenance_service.backfill_zero_sale_transactions()
    click.echo(f"PASS Fixed {fixed} zero-amount sale transactions.")


@maintenance_group.command('mark-overdue')
@click.option('--date', 'as_of', default=None, help='Reference date YYYY-MM-DD (default today)')
@with_appcontext
def mark_overdue_cli(as_of):
    """Mark pending installments due before the reference date as overdue."""
    try:
        day = parse_iso_date(as_of) if as_of else None
    except ValueError:
        click.echo(f"FAIL Invalid date: {as_of}")
        return

    updated = maintenance_service.mark_overdue_installments(day)
    click.echo(f"PASS Marked {updated} installments overdue.")


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(maintenance_group)
