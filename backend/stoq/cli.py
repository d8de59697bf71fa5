# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stoq/cli.py
# Usage, from backend/ with FLASK_APP=wsgi.py:
#   flask system init                  create missing tables (production uses migrations)
#   flask system reset-db --yes        drop and recreate every table, local databases only
#   flask system cleanup-sessions      purge dead session rows older than 30 days
#   flask users create-admin --email admin@stoq.local --password "Password123!"
#   flask users list [--status pending]
#   flask users approve 12 [--status rejected]
#   flask taxes add --country Canada --state Ontario --rate-bps 1300 --type HST [--city Toronto]
#   flask taxes list [--country Canada]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, APPROVAL_STATUSES, APPROVAL_APPROVED
from .services.auth_service import create_user, PasswordValidationError
from .services import session_service
from .services import tax_service
from .services.user_service import update_approval_status, UserError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables. Existing tables and data are left alone."""
    click.echo("START Initializing STOQ database...")
    db.create_all()
    click.echo("PASS Tables ready. Create an admin with 'python -m flask users create-admin'.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """Drop and recreate every table. All data is lost."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} expired or revoked sessions.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_admin_cli(email, password, first_name, last_name):
    """Create an admin. Admins skip the approval queue."""
    profile = {k: v for k, v in (("first_name", first_name), ("last_name", last_name)) if v}
    try:
        user = create_user(email=email, password=password, profile=profile, role=ROLE_ADMIN)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Use 8+ characters with upper and lower case, a digit and a symbol.")
        raise SystemExit(1)
    except ValueError as e:
        click.echo(f"FAIL Failed to create admin: {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo("Sign in at /api/auth/login to get a token.")


@users_group.command('list')
@click.option('--status', type=click.Choice(APPROVAL_STATUSES), help='Filter by approval status')
@with_appcontext
def list_users(status):
    """List all users with role and approval status."""
    query = db.session.query(User)
    if status:
        query = query.filter_by(approval_status=status)

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Email':<35} {'Business':<25} {'Role':<7} {'Approval':<10} {'Active'}")
    click.echo("="*100)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        business = (user.business_name or "-")[:24]
        click.echo(
            f"{user.id:<5} {user.email:<35} {business:<25} {user.role:<7} {user.approval_status:<10} {active_str}"
        )

    click.echo("="*100 + "\n")


@users_group.command('approve')
@click.argument('user_id', type=int)
@click.option('--status', type=click.Choice(APPROVAL_STATUSES), default=APPROVAL_APPROVED, show_default=True)
@with_appcontext
def approve_user_cli(user_id, status):
    """Set a user's approval status, acting as the first admin."""
    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).order_by(User.id.asc()).first()
    if not admin:
        click.echo("FAIL No admin account found. Run 'python -m flask users create-admin' first.")
        raise SystemExit(1)

    try:
        user = update_approval_status(user_id, status, admin)
    except UserError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS {user.email} is now {user.approval_status}")


@click.group('taxes')
def taxes_group():
    """Tax rate maintenance."""


@taxes_group.command('add')
@click.option('--country', required=True)
@click.option('--state', required=True, help='State or province')
@click.option('--city', default=None, help='City-specific rate')
@click.option('--rate-bps', type=int, required=True, help='Rate in basis points (1300 = 13%)')
@click.option('--type', 'tax_type', default=None, help='Label such as HST, GST, Sales Tax')
@click.option('--effective-date', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def add_tax_cli(country, state, city, rate_bps, tax_type, effective_date):
    try:
        row = tax_service.add_tax_rate(
            country=country,
            state=state,
            city=city,
            rate_bps=rate_bps,
            tax_type=tax_type,
            effective_date=effective_date,
        )
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    where = ", ".join(p for p in (row.city, row.state_province, row.country) if p)
    click.echo(f"PASS {where}: {row.rate_bps / 100:.2f}% {row.tax_type or ''} from {row.effective_date}")


@taxes_group.command('list')
@click.option('--country', default=None)
@with_appcontext
def list_taxes_cli(country):
    rows = tax_service.list_tax_rates(country)
    if not rows:
        click.echo("No tax rates found.")
        return

    for row in rows:
        click.echo(
            f"{row.id:<5} {row.country:<10} {row.state_province:<25} {(row.city or '-'):<20} "
            f"{row.rate_bps:>6} bps  {(row.tax_type or '-'):<10} {row.effective_date}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(taxes_group)
