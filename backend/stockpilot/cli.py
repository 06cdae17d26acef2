# Overview: Flask CLI command groups for bootstrap, user management and maintenance.

# backend/stockpilot/cli.py
# Commands (run from the backend directory with FLASK_APP=wsgi.py):
# - flask system init [--admin-email admin@stockpilot.local --admin-password ...]
#   Create tables and a default admin account (idempotent).
# - flask users list
# - flask users create --name "Jane" --email jane@example.com --password "Secret123" --role employee
# - flask categories repair-codes
#   Fix customer category codes that are not uppercase letters/underscores.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.users import ROLE_ADMIN, USER_ROLES
from .services.auth_service import create_user
from .services.customer_category_service import repair_all_codes
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-name', default='Administrator', help='Default admin display name')
@click.option('--admin-email', default='admin@stockpilot.local', help='Default admin email')
@click.option('--admin-password', default='Password123', help='Default admin password')
@with_appcontext
def init_system(admin_name, admin_email, admin_password):
    """
    Create all tables and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing StockPilot...")
    db.create_all()
    click.echo("PASS Tables created")

    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if admin:
        click.echo(f"PASS Using existing admin: {admin.email}")
    else:
        try:
            admin = create_user(name=admin_name, email=admin_email, password=admin_password, role=ROLE_ADMIN)
        except (ValidationError, ConflictError) as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Created admin user: {admin.email}")

    click.echo("DONE")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='employee', prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a new user.

    Password must be at least 8 characters and contain a letter and a digit.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role)
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<30} {'Role':<9} {'Active'}")
    click.echo("=" * 72)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<30} {user.role:<9} {active_str}")
    click.echo("=" * 72 + "\n")


@click.group('categories')
def categories_group():
    """Customer category maintenance."""


@categories_group.command('repair-codes')
@with_appcontext
def repair_codes_cli():
    """Repair invalid customer category codes in bulk."""
    repaired = repair_all_codes()
    click.echo(f"PASS Repaired {repaired} customer category code(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(categories_group)
