# Overview: Flask CLI command groups for bootstrap, user inspection and dev tokens.

# backend/fashionmart/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, one user per role and a starter category.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role staff]
#   List users with role and active status.
# - python -m flask users create --id user_123 --email jane@example.com --role designer
#   Provision a user (the id is the identity provider's subject).
# - python -m flask users set-role user_123 inventory_manager --reason "Promotion"
#   Change a user's role; written to the role-change audit log.
# - python -m flask users token user_123 [--ttl 3600]
#   Mint a bearer token for local testing.

import click
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import Category, User, RoleChangeEvent
from .roles import ALL_ROLES, DEFAULT_ROLE
from .services import session_service, user_service


DEFAULT_USERS = [
    ("seed_admin", "admin@fashionmart.local", "admin"),
    ("seed_customer", "customer@fashionmart.local", "customer"),
    ("seed_designer", "designer@fashionmart.local", "designer"),
    ("seed_staff", "staff@fashionmart.local", "staff"),
    ("seed_inventory", "inventory@fashionmart.local", "inventory_manager"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize Fashion Mart: schema, one user per role, a starter category.

    Safe to run repeatedly; existing rows are left alone.
    """
    click.echo("START Initializing Fashion Mart...")
    db.create_all()

    click.echo("\nUSERS Creating default users...")
    for user_id, email, role in DEFAULT_USERS:
        if db.session.get(User, user_id) or db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{user_id}' already exists, skipping...")
            continue
        try:
            user_service.create_user(user_id, email, role=role)
            click.echo(f"PASS Created user: {user_id} ({email}) with role '{role}'")
        except ApiError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{user_id}': {e.message}")

    if not db.session.query(Category).first():
        db.session.add(Category(name="General", description="Uncategorized products"))
        db.session.commit()
        click.echo("PASS Created category: General")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Fashion Mart Initialized Successfully!")
    click.echo("=" * 60)
    click.echo("\nMint a bearer token with: flask users token <user-id>")


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

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete. Run 'flask system init' to seed users.")


@click.group('users')
def users_group():
    """User inspection and management commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(ALL_ROLES), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with their role and status."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.created_at.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<32} {'Email':<36} {'Role':<18} {'Active'}")
    click.echo("=" * 100)
    for user in users:
        click.echo(f"{user.id:<32} {user.email:<36} {user.role:<18} {'Yes' if user.active else 'No'}")
    click.echo("=" * 100)
    click.echo(f"Total: {len(users)} users\n")


@users_group.command('create')
@click.option('--id', 'user_id', prompt=True, help='Identity provider subject')
@click.option('--email', prompt=True)
@click.option('--role', type=click.Choice(ALL_ROLES), default=DEFAULT_ROLE, show_default=True)
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cmd(user_id, email, role, first_name, last_name):
    """Provision a user."""
    try:
        user = user_service.create_user(user_id, email, role=role, first_name=first_name, last_name=last_name)
    except ApiError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.id} ({user.email}) with role '{user.role}'")


@users_group.command('set-role')
@click.argument('user_id')
@click.argument('role', type=click.Choice(ALL_ROLES))
@click.option('--reason', default='Changed from CLI')
@with_appcontext
def set_role(user_id, role, reason):
    """Change a user's role outside the API; still audited."""
    user = db.session.get(User, user_id)
    if not user:
        raise click.ClickException(f"User '{user_id}' not found")
    if user.role == role:
        click.echo(f"User '{user_id}' already has role '{role}'")
        return

    old_role = user.role
    user.role = role
    db.session.add(RoleChangeEvent(
        user_id=user.id,
        changed_by_id=None,
        old_role=old_role,
        new_role=role,
        reason=reason,
    ))
    db.session.commit()
    click.echo(f"PASS {user_id}: {old_role} -> {role}")


@users_group.command('token')
@click.argument('user_id')
@click.option('--ttl', type=int, default=None, help='Lifetime in seconds')
@with_appcontext
def issue_token(user_id, ttl):
    """Print a bearer token for an existing user."""
    user = db.session.get(User, user_id)
    if not user:
        raise click.ClickException(f"User '{user_id}' not found")
    click.echo(session_service.issue_token(user.id, email=user.email, ttl_seconds=ttl))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
