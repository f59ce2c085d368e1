"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask next-ref: Show the next free estimate (or invoice) ref
"""

import click
from flask import current_app
from orderdesk.database import db_session, create_all
from orderdesk.services.order_service import OrderAssembler


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('next-ref')
    @click.option('--invoice', is_flag=True, help='Use the invoice sequence instead of estimates')
    def next_ref(invoice):
        """Show the ref the next estimate or invoice would receive."""
        options = current_app.extensions['orderdesk']['options']
        assembler = OrderAssembler(db_session, invoice=invoice, options=options)

        number = assembler.calculate_next_ref()
        assembler.order.ref = number
        assembler.order.prefix = assembler.find_best_prefix()
        kind = 'invoice' if invoice else 'estimate'

        click.echo(f'Next {kind} ref: {number} ({assembler.order.format_ref(options.number_length)})')
