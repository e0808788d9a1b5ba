"""CLI commands implemented with click.

Every command opens the sealed vault with the prompted password, applies
one change and seals it again. Field values are only printed by `get`.
"""
from __future__ import annotations
import logging, click
from datetime import datetime
from pathlib import Path
from tresor.config.settings import DEFAULT_VAULT_PATH, LOG_LEVEL
from tresor.lib.errors import TresorError
from tresor.lib.query import parse_field_filter
from tresor.lib.storage import open_vault, seal
from tresor.lib.vault import Vault

password_option = click.option('--password', prompt=True, hide_input=True)


def _fail(e: Exception):
	click.echo(f'Error: {e}', err=True)
	raise SystemExit(1)


def _stamp(ms: int) -> str:
	return datetime.fromtimestamp(ms / 1000).isoformat(timespec='seconds')


@click.group()
@click.option('--path', type=click.Path(dir_okay=False, path_type=Path), envvar='TRESOR_PATH',
	default=DEFAULT_VAULT_PATH, show_default=True, help='Sealed vault file.')
@click.pass_context
def cli(ctx, path):
	"""tresor: password-sealed secrets vault"""
	logging.basicConfig(level=LOG_LEVEL)
	ctx.obj = path.expanduser()


@cli.command()
@click.argument('name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--force', is_flag=True, help='Overwrite an existing vault file.')
@click.pass_obj
def init(path: Path, name, password, force):
	"""Create a new, empty vault."""
	if path.exists() and not force:
		_fail(f'{path} already exists (use --force to overwrite)')
	path.parent.mkdir(parents=True, exist_ok=True)
	try:
		with Vault(name) as vault:
			seal(vault, path, password)
	except TresorError as e:
		_fail(e)
	click.echo('Vault created.')


@cli.command()
@password_option
@click.pass_obj
def info(path: Path, password):
	"""Show vault metadata."""
	try:
		with open_vault(path, password) as vault:
			click.echo(f'Name: {vault.name}\nGenerator: {vault.generator}\nEntries: {len(vault)}\nCreated: {_stamp(vault.created)}\nModified: {_stamp(vault.modified)}')
	except TresorError as e:
		_fail(e)


@cli.command('add')
@click.argument('entry_id')
@password_option
@click.pass_obj
def add_entry(path: Path, entry_id, password):
	"""Create an empty entry."""
	try:
		with open_vault(path, password) as vault:
			vault.create_entry(entry_id)
			seal(vault, path, password)
	except TresorError as e:
		_fail(e)
	click.echo(f'Added entry {entry_id}.')


@cli.command('set')
@click.argument('entry_id')
@click.argument('key')
@click.option('--value', prompt=True, hide_input=True)
@click.option('--update', is_flag=True, help='Replace an existing field instead of adding one.')
@password_option
@click.pass_obj
def set_field(path: Path, entry_id, key, value, update, password):
	"""Add a field to an entry (or replace one with --update)."""
	try:
		with open_vault(path, password) as vault:
			entry = vault.get_entry(entry_id)
			if update:
				entry.update_field(key, value)
			else:
				entry.add_field(key, value)
			seal(vault, path, password)
	except TresorError as e:
		_fail(e)
	click.echo(f'{"Updated" if update else "Added"} {key} on {entry_id}.')


@cli.command('get')
@click.argument('entry_id')
@click.argument('key', required=False)
@password_option
@click.pass_obj
def get_entry(path: Path, entry_id, key, password):
	"""Print one field value, or the field keys of an entry."""
	try:
		with open_vault(path, password) as vault:
			entry = vault.get_entry(entry_id)
			if key is None:
				for k in entry.keys():
					click.echo(k)
			else:
				click.echo(entry.get_field(key))
	except TresorError as e:
		_fail(e)


@cli.command('rm')
@click.argument('entry_id')
@password_option
@click.pass_obj
def remove_entry(path: Path, entry_id, password):
	"""Remove an entry and all its fields."""
	try:
		with open_vault(path, password) as vault:
			vault.remove_entry(entry_id)
			seal(vault, path, password)
	except TresorError as e:
		_fail(e)
	click.echo(f'Removed entry {entry_id}.')


@cli.command('ls')
@click.argument('filter', default='')
@click.option('--where', default='', help='Field filters as KEY:VALUE{,KEY:VALUE}.')
@password_option
@click.pass_obj
def list_entries(path: Path, filter, where, password):
	"""List entry ids containing FILTER."""
	try:
		with open_vault(path, password) as vault:
			for entry in vault.query(filter, fields=parse_field_filter(where)):
				click.echo(entry.id)
	except TresorError as e:
		_fail(e)
