# ledgerhound/cli.py
import logging
import os
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path

import click
from dotenv import load_dotenv

from ledgerhound import database
from ledgerhound.config import load_config
from ledgerhound.core.models import Account
from ledgerhound.detection import detect_subscriptions
from ledgerhound.errors import LedgerError
from ledgerhound.importer import import_csv_bytes
from ledgerhound.loaders import get_loader
from ledgerhound.utils import format_amount


@contextmanager
def _session(ctx):
    """Open the configured database and turn library errors into CLI errors."""
    try:
        with database.connect(ctx.obj['db_path']) as conn:
            yield conn
    except LedgerError as e:
        raise click.ClickException(str(e)) from e
    except sqlite3.Error as e:
        raise click.ClickException(f"Database error: {e}") from e


@click.group()
@click.option(
    '--config', 'config_path',
    default='config.yaml',
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (defaults are used if it does not exist)'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides config and LEDGERHOUND_DB)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file, e.g. with LEDGERHOUND_DB or LEDGERHOUND_LOG'
)
@click.pass_context
def main(ctx, config_path, db_path, env_file):
    """
    Import Danish bank CSV exports into a SQLite ledger and detect
    recurring payments per account.
    """
    if env_file:
        load_dotenv(env_file)
    logging.basicConfig(level=os.getenv("LEDGERHOUND_LOG", "WARNING").upper())

    cfg = load_config(config_path)
    ctx.obj = {'config': cfg, 'db_path': db_path or cfg['db_path']}


# --- accounts ---------------------------------------------------------------

@main.group()
def accounts():
    """Manage accounts."""


@accounts.command('add')
@click.argument('name')
@click.option('--number', 'account_number', default=None, help='Bank account number')
@click.option('--currency', default='DKK', show_default=True)
@click.pass_context
def add_account(ctx, name, account_number, currency):
    with _session(ctx) as conn:
        account_id = database.create_account(
            conn, Account(name=name, account_number=account_number, currency=currency)
        )
    click.echo(f"Created account {account_id}: {name}")


@accounts.command('list')
@click.pass_context
def list_accounts(ctx):
    with _session(ctx) as conn:
        rows = database.list_accounts(conn)
    for acc in rows:
        click.echo(f"{acc.id}\t{acc.name}\t{acc.account_number or ''}\t{acc.currency}")


# --- import -----------------------------------------------------------------

@main.command('import')
@click.argument('csv_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--account', 'account_id', required=True, type=int, help='Target account id')
@click.option(
    '--atomic/--no-atomic',
    default=None,
    help='Roll back the whole file if any row fails (default from config)'
)
@click.option('--loader', 'loader_name', default=None, help='Loader name from bank_loaders')
@click.pass_context
def import_file(ctx, csv_file, account_id, atomic, loader_name):
    """Import a bank CSV export into an account."""
    cfg = ctx.obj['config']
    if atomic is None:
        atomic = bool(cfg['import']['atomic'])
    try:
        loader = get_loader(loader_name or cfg['import']['loader'], cfg)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--loader') from e

    path = Path(csv_file)
    with _session(ctx) as conn:
        result = import_csv_bytes(
            conn, path.read_bytes(), account_id, path.name, atomic=atomic, loader=loader
        )
    click.echo(
        f"Imported {result.imported} of {result.total_rows} row(s) from {path.name} "
        f"({result.skipped_duplicates} duplicate(s) skipped)."
    )


@main.command('transactions')
@click.option('--account', 'account_id', required=True, type=int)
@click.option('--limit', default=None, type=int)
@click.pass_context
def list_transactions(ctx, account_id, limit):
    """Show an account's transactions, newest first."""
    with _session(ctx) as conn:
        rows = database.get_transactions_by_account(conn, account_id, limit)
    for tx in rows:
        category = tx['category_name'] or ''
        if tx['parent_category_name']:
            category = f"{tx['parent_category_name']} / {category}"
        click.echo(f"{tx['date']}\t{format_amount(tx['amount']):>12}\t{tx['payee']}\t{category}")


# --- subscriptions ----------------------------------------------------------

def _echo_subscription(sub):
    click.echo(
        f"{sub.payee_pattern:<30} {format_amount(sub.amount):>10} "
        f"{sub.frequency.value:<8} {sub.confidence:.2f} "
        f"last {sub.last_charge_date} next {sub.next_charge_date or '-'}"
    )


@main.command('detect')
@click.option('--account', 'account_id', required=True, type=int)
@click.option('--save', is_flag=True, default=False, help='Save every detected candidate')
@click.pass_context
def detect(ctx, account_id, save):
    """Detect recurring payments for an account."""
    min_confidence = float(ctx.obj['config']['detection']['min_confidence'])
    with _session(ctx) as conn:
        candidates = detect_subscriptions(conn, account_id, min_confidence)
        if save:
            for cand in candidates:
                cand.id = database.save_subscription(conn, cand)

    if not candidates:
        click.echo("No recurring payments detected.")
        return
    for cand in candidates:
        _echo_subscription(cand)
    if save:
        click.echo(f"Saved {len(candidates)} subscription(s).")


@main.group()
def subscriptions():
    """Manage saved subscriptions."""


@subscriptions.command('list')
@click.option('--account', 'account_id', required=True, type=int)
@click.pass_context
def list_subscriptions(ctx, account_id):
    with _session(ctx) as conn:
        subs = database.list_subscriptions(conn, account_id)
    for sub in subs:
        click.echo(f"{sub.id}\t", nl=False)
        _echo_subscription(sub)


@subscriptions.command('dismiss')
@click.argument('subscription_id', type=int)
@click.pass_context
def dismiss(ctx, subscription_id):
    with _session(ctx) as conn:
        changed = database.dismiss_subscription(conn, subscription_id)
    if not changed:
        raise click.ClickException(f"No subscription with id {subscription_id}")
    click.echo(f"Dismissed subscription {subscription_id}.")


_MONTH = re.compile(r"\d{4}-(0[1-9]|1[0-2])")


def _validate_month(ctx, param, value):
    if not _MONTH.fullmatch(value):
        raise click.BadParameter(f"'{value}' is not a month in YYYY-MM form")
    return value


# --- categories -------------------------------------------------------------

@main.command('categories')
@click.pass_context
def list_categories(ctx):
    """Print the category tree."""
    with _session(ctx) as conn:
        cats = database.list_categories(conn)
    children = {}
    for cat in cats:
        children.setdefault(cat.parent_id, []).append(cat)

    def _walk(parent_id, level):
        for cat in children.get(parent_id, []):
            click.echo(f"{'  ' * level}{cat.id}\t{cat.name}")
            _walk(cat.id, level + 1)

    _walk(None, 0)


@main.command('spend')
@click.option('--category', 'category_ids', required=True, multiple=True, type=int)
@click.option('--month', required=True, callback=_validate_month, help='Month as YYYY-MM')
@click.option('--depth', default=None, type=int, help='Subcategory levels to include')
@click.option('--all-levels', is_flag=True, default=False, help='Include every subcategory level')
@click.pass_context
def spend(ctx, category_ids, month, depth, all_levels):
    """Total spending for categories in a month."""
    if all_levels:
        depth = None
    elif depth is None:
        depth = int(ctx.obj['config']['categories']['rollup_depth'])
    with _session(ctx) as conn:
        total = database.category_spend(conn, category_ids, month, depth)
    click.echo(f"{month}: {format_amount(total)}")
