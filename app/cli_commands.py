"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-organization: Create an organization with its owner
- flask mark-overdue-invoices: Flag unpaid invoices past their due date
"""
import click

from app.database import db_session, create_all
from app.exceptions import AppError
from app.services.invoice_service import mark_overdue_invoices
from app.services.organization_service import create_organization
from app.utils.dates import parse_date


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('✅ Database tables created', fg='green'))

    @app.cli.command('create-organization')
    @click.option('--name', prompt=True, help='Organization name')
    @click.option('--owner-email', prompt=True, help='Owner email address')
    @click.option('--owner-password', prompt=True, hide_input=True, confirmation_prompt=True,
                  help='Owner password (ignored if the user already exists)')
    def create_organization_command(name, owner_email, owner_password):
        """Create an organization and its OWNER user."""
        try:
            organization = create_organization(db_session, name, owner_email, owner_password)
        except AppError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('\n✅ Organization created', fg='green', bold=True))
        click.echo(f'   Name: {organization.name}')
        click.echo(f'   Slug: {organization.slug}')
        click.echo(f'   ID: {organization.id}')
        click.echo(f'   Owner: {owner_email}')

    @app.cli.command('mark-overdue-invoices')
    @click.option('--as-of', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
    def mark_overdue_invoices_command(as_of):
        """Move sent/opened invoices past their due date to overdue."""
        try:
            count = mark_overdue_invoices(db_session, parse_date(as_of, 'as_of'))
        except AppError as e:
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style(f'✅ {count} invoice(s) marked overdue', fg='green'))
