"""
Flask CLI commands for storefront maintenance.

Commands:
- flask init-db: Create all tables
- flask recalc-cod-balances: Rebuild every delivery person's COD balance
- flask set-exchange-rate CODE RATE: Update a currency rate and drop cached rates
"""

import click
from decimal import Decimal, InvalidOperation
from storefront.database import get_session, create_all
from storefront.models import DeliveryPerson, Currency
from storefront.services.cod_service import recalculate_cod_balance
from storefront.services.currency_service import invalidate_currency_cache


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables for every model."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('recalc-cod-balances')
    def recalc_cod_balances():
        """Recompute cod_balance from unbatched collections for all delivery persons."""
        db_session = get_session()
        try:
            persons = db_session.query(DeliveryPerson).order_by(DeliveryPerson.id).all()
            for person in persons:
                balance = recalculate_cod_balance(db_session, person.id)
                click.echo(f'   {person.name} (#{person.id}): {balance}')
            db_session.commit()
            click.echo(click.style(f'Recalculated {len(persons)} balance(s).', fg='green'))
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'Error recalculating balances: {e}', fg='red'))
            raise SystemExit(1)

    @app.cli.command('set-exchange-rate')
    @click.argument('code')
    @click.argument('rate')
    def set_exchange_rate(code, rate):
        """Set the exchange rate of a currency relative to the default one."""
        try:
            value = Decimal(rate)
        except InvalidOperation:
            click.echo(click.style(f'Invalid rate: {rate}', fg='red'))
            raise SystemExit(1)
        if value <= 0:
            click.echo(click.style('Rate must be positive.', fg='red'))
            raise SystemExit(1)

        db_session = get_session()
        currency = db_session.query(Currency).filter_by(code=code.upper()).first()
        if not currency:
            click.echo(click.style(f'Unknown currency: {code}', fg='red'))
            raise SystemExit(1)
        if currency.is_default and value != 1:
            click.echo(click.style('The default currency always has rate 1.', fg='red'))
            raise SystemExit(1)

        currency.exchange_rate = value
        db_session.commit()
        invalidate_currency_cache()
        click.echo(click.style(f'{currency.code} rate set to {value}.', fg='green'))
