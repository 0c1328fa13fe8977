# Overview: Flask CLI command groups for bootstrap, tenant management, and invoice follow-up.

# backend/smartbuild/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "smartbuild:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use "flask db upgrade" for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Builders" --code "ACME" [--business-name ...] [--business-email ...]
#   Create a new organization (tenant).
#
# Invoices:
# - python -m flask invoices overdue --org-id 1
#   List unpaid invoices past their due date.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Client, Estimate, Invoice, Organization
from .money import format_currency
from .services import invoice_service
from .time_utils import today


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask orgs create' to add a tenant.")


# =============================================================================
# ORGANIZATION COMMANDS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Clients':<8} {'Docs'}")
    click.echo("="*80)

    for org in orgs:
        client_count = db.session.query(Client).filter_by(org_id=org.id).count()
        doc_count = (
            db.session.query(Estimate).filter_by(org_id=org.id).count()
            + db.session.query(Invoice).filter_by(org_id=org.id).count()
        )
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {client_count:<8} {doc_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--business-name', default=None, help='Name shown to clients')
@click.option('--business-email', default=None, help='Reply-to address on estimate email')
@with_appcontext
def create_org_cli(name, code, business_name, business_email):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(
        name=name,
        code=code,
        business_name=business_name,
        business_email=business_email,
        is_active=True,
    )
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# INVOICE COMMANDS
# =============================================================================

@click.group('invoices')
def invoices_group():
    """Invoice follow-up commands."""


@invoices_group.command('overdue')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def overdue_invoices(org_id):
    """List unpaid invoices whose due date has passed."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    as_of = today()
    invoices = invoice_service.list_invoices(org_id, include_archived=True, overdue_only=True, as_of=as_of)

    if not invoices:
        click.echo("No overdue invoices.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Number':<15} {'Client':<25} {'Due':<12} {'Days':<6} {'Total'}")
    click.echo("="*80)

    for invoice in invoices:
        client_name = invoice.client.name if invoice.client else "-"
        days_late = (as_of - invoice.due_date).days
        click.echo(
            f"{invoice.invoice_number:<15} {client_name[:24]:<25} "
            f"{invoice.due_date.isoformat():<12} {days_late:<6} {format_currency(invoice.total)}"
        )

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(invoices_group)
