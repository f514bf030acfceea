# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dealerp/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: roles, permissions, default location and the admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --full-name "Ada Obi" --email ada@dealer.local --password "Password123!" --role editor
#
# Inventory:
# - python -m flask inventory low-stock
#   Print products at or below their reorder level, most depleted first.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import DEFAULT_ROLES
from .services import auth_service, inventory_service, location_service, permission_service
from .validation import DOMAIN_ERRORS

DEFAULT_ADMIN_EMAIL = "admin@dealerp.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, help='Email of the bootstrap admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password of the bootstrap admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Initialize roles, permissions, the default location and an admin user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing system...")

    db.create_all()

    permission_service.bootstrap_rbac()
    click.echo(f"PASS Roles: {', '.join(name for name, _ in DEFAULT_ROLES)}")

    location = location_service.ensure_location(current_app.config["DEFAULT_LOCATION_NAME"])
    click.echo(f"PASS Default location: {location.name} (ID: {location.id})")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
    else:
        try:
            user = auth_service.create_user("Administrator", admin_email, admin_password, role_name="admin")
        except DOMAIN_ERRORS as e:
            raise click.ClickException(f"Failed to create admin user: {e}")
        click.echo(f"PASS Created user: {user.email} with role 'admin'")

    click.echo("DONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema. This will DELETE ALL DATA!"""
    if not yes:
        click.confirm("This will delete ALL data. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset. Run 'python -m flask system init' next.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([name for name, _ in DEFAULT_ROLES]), prompt=True, help='Role')
@with_appcontext
def create_user_cli(full_name, email, password, role):
    """
    Create a new user.

    Password requirements: 8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = auth_service.create_user(full_name, email, password, role_name=role)
    except DOMAIN_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.full_name} ({user.email}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        roles_str = ", ".join(permission_service.get_user_role_names(user.id)) or "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.full_name:<25} {user.email:<35} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """Products at or below their reorder level, most depleted first."""
    rows = inventory_service.list_low_stock()
    if not rows:
        click.echo("No products at or below reorder level.")
        return

    click.echo(f"{'ID':<6} {'SKU':<20} {'Name':<30} {'Stock':>7} {'Reorder':>8}")
    for product, stock in rows:
        click.echo(f"{product.id:<6} {product.sku:<20} {product.name[:30]:<30} {stock:>7} {product.reorder_level:>8}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
