# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/nexuspos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (e.g. FLASK_APP="nexuspos:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Business onboarding:
# - python -m flask business create --name "Abarrotes Lupita" --location "Centro" --phone 5550000000 \
#       --owner-email owner@example.com --owner-phone 5551111111 --first-name Ana --last-name Lopez
#   Create a business and its owner (prompts for the password).
# - python -m flask business list
#
# Users:
# - python -m flask users create --by owner@example.com --email admin@example.com --phone 5552222222 \
#       --first-name Luis --last-name Perez
#   Register a user as another user (owner -> admin, admin -> cashier).
# - python -m flask users list --business-id 1
#
# Registers:
# - python -m flask registers create --by owner@example.com --device-id POS-01 --location "Front"
#
# Permissions:
# - python -m flask perms list [--category SALES]
# - python -m flask perms check cashier@example.com sales.cancel
# - python -m flask perms grant --by owner@example.com cashier@example.com sales.cancel

import click
from flask.cli import with_appcontext

from .context import AuthContext
from .errors import PosError
from .extensions import db
from .models import Business, User
from .permissions import PERMISSION_DEFINITIONS, get_permissions_by_category
from .services import auth_service, permission_service, shift_service


def _acting_context(email: str) -> AuthContext:
    user = db.session.query(User).filter_by(email=email.strip().lower(), is_active=True).first()
    if user is None:
        raise click.ClickException(f"FAIL User '{email}' not found or inactive")
    return AuthContext(user_id=user.id, business_id=user.business_id)


def _run(func, *args, **kwargs):
    """Call a service and turn its typed errors into a CLI failure."""
    try:
        return func(*args, **kwargs)
    except PosError as exc:
        raise click.ClickException(f"FAIL {exc.message}") from exc


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete.")


@click.group('business')
def business_group():
    """Business (tenant) onboarding."""


@business_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--location', required=True, help='Business address or location')
@click.option('--phone', required=True, help='Business phone')
@click.option('--owner-email', required=True, help='Owner login email')
@click.option('--owner-phone', required=True, help='Owner phone')
@click.option('--first-name', required=True, help='Owner first name')
@click.option('--last-name', required=True, help='Owner paternal last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
@click.option('--pin', default=None, help='Owner PIN (4-6 digits)')
@with_appcontext
def create_business_cli(name, location, phone, owner_email, owner_phone, first_name, last_name, password, pin):
    """Create a business and its owner account."""
    business, owner = _run(
        auth_service.register_business,
        business_name=name,
        location=location,
        business_phone=phone,
        first_name=first_name,
        paternal_last_name=last_name,
        email=owner_email,
        phone=owner_phone,
        password=password,
        pin=pin,
    )
    click.echo(f"PASS Created business {business.id} '{business.name}' with owner {owner.email}")


@business_group.command('list')
@with_appcontext
def list_businesses():
    businesses = db.session.query(Business).order_by(Business.id).all()
    if not businesses:
        click.echo("No businesses found.")
        return
    for business in businesses:
        active_str = "Yes" if business.is_active else "No"
        click.echo(f"{business.id:<5} {business.name:<30} {business.location:<30} {active_str}")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--by', 'by_email', required=True, help='Email of the owner/admin registering the user')
@click.option('--email', required=True, help='New user email')
@click.option('--phone', required=True, help='New user phone')
@click.option('--first-name', required=True)
@click.option('--last-name', required=True, help='Paternal last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--pin', default=None, help='PIN (4-6 digits)')
@with_appcontext
def create_user_cli(by_email, email, phone, first_name, last_name, password, pin):
    """Register a user. Owners create admins, admins create cashiers."""
    ctx = _acting_context(by_email)
    user = _run(
        auth_service.register_user,
        ctx,
        first_name=first_name,
        paternal_last_name=last_name,
        email=email,
        phone=phone,
        password=password,
        pin=pin,
    )
    click.echo(f"PASS Created {user.type} {user.email} (id {user.id})")


@users_group.command('list')
@click.option('--business-id', type=int, help='Filter by business ID')
@with_appcontext
def list_users(business_id):
    query = db.session.query(User)
    if business_id is not None:
        query = query.filter_by(business_id=business_id)
    users = query.order_by(User.business_id, User.id).all()

    click.echo(f"{'ID':<5} {'BIZ':<5} {'EMAIL':<30} {'TYPE':<8} {'ACTIVE':<8}")
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.business_id:<5} {user.email:<30} {user.type:<8} {active_str:<8}")


@click.group('registers')
def registers_group():
    """Register management commands."""


@registers_group.command('create')
@click.option('--by', 'by_email', required=True, help='Email of the user creating the register')
@click.option('--device-id', required=True, help='Device identifier (unique within the business)')
@click.option('--location', default=None, help='Physical location')
@with_appcontext
def create_register_cli(by_email, device_id, location):
    ctx = _acting_context(by_email)
    register = _run(shift_service.create_register, ctx, device_id, location=location)
    click.echo(f"PASS Created register {register.id} ({register.device_id})")


@click.group('perms')
def perms_group():
    """Permission inspection and grants."""


@perms_group.command('list')
@click.option('--category', help='Filter by category (e.g. SALES)')
def list_permissions_cli(category):
    definitions = get_permissions_by_category(category.upper()) if category else PERMISSION_DEFINITIONS
    for code, name, _description, perm_category in definitions:
        click.echo(f"{code:<28} {perm_category:<10} {name}")


@perms_group.command('check')
@click.argument('email')
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(email, permission_code):
    """Check if a user has a specific permission."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"FAIL User '{email}' not found")

    if permission_service.check_permission(user.id, permission_code, user.business_id):
        click.echo(f"PASS User '{email}' HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL User '{email}' DOES NOT HAVE permission '{permission_code}'")

    all_perms = permission_service.get_effective_permissions(user.id, user.business_id)
    click.echo(f"\nUser type: {user.type}")
    click.echo(f"Total permissions: {len(all_perms)}")


@perms_group.command('grant')
@click.option('--by', 'by_email', required=True, help='Email of the user granting the permission')
@click.argument('email')
@click.argument('permission_code')
@with_appcontext
def grant_permission_cli(by_email, email, permission_code):
    """Grant an explicit permission to a user of the same business."""
    ctx = _acting_context(by_email)
    target = db.session.query(User).filter_by(email=email.strip().lower(), business_id=ctx.business_id).first()
    if not target:
        raise click.ClickException(f"FAIL User '{email}' not found in this business")

    _run(permission_service.assign_permission, ctx, target.id, permission_code)
    click.echo(f"PASS Granted '{permission_code}' to '{email}'")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(business_group)
    app.cli.add_command(users_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(perms_group)
