"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-superadmin: Create (or promote) the platform superadmin
"""

import click
import re
from flask import current_app
from portal.database import db_session, create_all
from portal.models import AppUser, ApprovalStatus


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all database tables."""
        create_all()
        click.echo(click.style('✅ Tabelas criadas.', fg='green'))

    @app.cli.command('create-superadmin')
    @click.option('--email', default=None, help='Superadmin email (defaults to SUPERADMIN_EMAIL)')
    @click.option('--name', default=None, help='Full name (defaults to SUPERADMIN_NAME)')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Superadmin password')
    def create_superadmin(email, name, password):
        """Create the superadmin account, or promote an existing user."""
        email = (email or current_app.config['SUPERADMIN_EMAIL']).strip().lower()
        name = name or current_app.config['SUPERADMIN_NAME']

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use o formato: usuario@exemplo.com', fg='red'))
            return

        if len(password) < 8:
            click.echo(click.style('❌ A senha deve ter pelo menos 8 caracteres.', fg='red'))
            return

        try:
            user = db_session.query(AppUser).filter_by(email=email).first()
            created = user is None
            if created:
                user = AppUser(email=email, full_name=name)
                db_session.add(user)

            user.is_superadmin = True
            user.active = True
            user.approval_status = ApprovalStatus.APPROVED
            user.set_password(password)
            db_session.commit()

            verb = 'criado' if created else 'atualizado'
            click.echo(click.style(f'\n✅ Superadmin {verb} com sucesso!', fg='green', bold=True))
            click.echo(f'   Email: {email}')
            click.echo(f'   ID: {user.id}')

        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Erro ao criar superadmin: {str(e)}', fg='red'))
            raise click.Abort()
