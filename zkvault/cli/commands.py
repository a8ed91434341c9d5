"""CLI commands implemented with click.

Every command that touches vault contents prompts for the master password,
unlocks a fresh session, and signs out (dropping the key) before exiting.
"""
from __future__ import annotations
import logging, click
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional
from config import settings
from zkvault.lib.clipboard import ClipboardUnavailable, SecureClipboard
from zkvault.lib.crypto import CryptoError, IntegrityError, KeyDeriver
from zkvault.lib.generator import ConfigurationError, PasswordOptions, build_charset, entropy_bits, estimate_strength, generate
from zkvault.lib.items import ALL_FOLDERS
from zkvault.lib.remote import RemoteStore, SyncError
from zkvault.lib.storage import ClipboardPreferences, LocalCache, StorageError
from zkvault.lib.sync import VaultSyncEngine
from zkvault.lib.transfer import EnvelopeError, default_export_name

log = logging.getLogger(__name__)
SYNC_FLUSH_TIMEOUT = 10.0

master_option = click.option('--master-password', 'master', prompt='Master password', hide_input=True)

@contextmanager
def open_vault(master: str, clipboard: SecureClipboard | None = None) -> Iterator[VaultSyncEngine]:
	cache = LocalCache()
	remote = None
	try:
		owner, salt = cache.read_session()
		remote = RemoteStore.from_env(owner)
		engine = VaultSyncEngine(cache, remote, clipboard=clipboard, owner_ref=owner)
		engine.unlock(master, salt)
	except (StorageError, CryptoError, IntegrityError) as e:
		if remote is not None: remote.close()
		raise click.ClickException(str(e)) from e
	try:
		yield engine
		if not engine.flush(SYNC_FLUSH_TIMEOUT):
			click.echo('Warning: remote sync still pending; local copy saved.', err=True)
		elif engine.stats.last_error:
			click.echo(f'Warning: remote sync failed ({engine.stats.last_error}); local copy saved.', err=True)
	finally:
		engine.sign_out()
		if remote is not None: remote.close()

def _options(length, no_upper, no_lower, no_numbers, no_symbols, exclude_look_alikes) -> PasswordOptions:
	return PasswordOptions(length, not no_upper, not no_lower, not no_numbers, not no_symbols, exclude_look_alikes)

def generator_options(f):
	for opt in reversed([
		click.option('--length', '-l', type=int, default=settings.DEFAULT_PASSWORD_LENGTH, show_default=True),
		click.option('--no-upper', is_flag=True, help='Exclude A-Z.'),
		click.option('--no-lower', is_flag=True, help='Exclude a-z.'),
		click.option('--no-numbers', is_flag=True, help='Exclude 0-9.'),
		click.option('--no-symbols', is_flag=True, help='Exclude symbols.'),
		click.option('--exclude-look-alikes', is_flag=True, help='Drop 0 O o 1 l I L.'),
	]):
		f = opt(f)
	return f


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Debug logging.')
def cli(verbose):
	"""zkvault: zero-knowledge password vault"""
	logging.basicConfig(level=logging.DEBUG if verbose else settings.log_level(), format=settings.LOG_FORMAT)

@cli.command()
@click.option('--password', 'master', prompt='Master password', hide_input=True, confirmation_prompt=True)
@click.option('--owner', default='', help='Account identity the remote vault belongs to.')
@click.option('--force', is_flag=True, help='Recreate if a vault already exists.')
@click.option('--force-remote', is_flag=True, help='Replace an existing remote vault.')
def init(master, owner, force, force_remote):
	"""Create a new encrypted vault (use --force to recreate)."""
	cache = LocalCache()
	if cache.exists() and not force:
		raise click.ClickException('Vault exists (use --force to recreate)')
	remote = RemoteStore.from_env(owner)
	try:
		if remote is not None and not force_remote:
			_require_empty_remote(remote)
		cache.remove()
		deriver = KeyDeriver()
		salt = deriver.generate_salt()
		cache.write_session(owner, salt)
		engine = VaultSyncEngine(cache, remote, deriver=deriver, owner_ref=owner)
		try:
			engine.create(deriver.derive(master, salt))
			engine.flush(SYNC_FLUSH_TIMEOUT)
		except CryptoError as e:
			raise click.ClickException(str(e)) from e
		finally:
			engine.sign_out()
	finally:
		if remote is not None: remote.close()
	click.echo('Vault created.')

def _require_empty_remote(remote: RemoteStore) -> None:
	# a fresh salt cannot read an existing remote packet
	try:
		snap = remote.fetch()
	except SyncError as e:
		raise click.ClickException(f'Cannot check the remote vault ({e}); use --force-remote to skip') from e
	if snap.packet is not None:
		raise click.ClickException('Remote vault already exists for this account (use --force-remote to replace it)')

@cli.command('list')
@master_option
@click.option('--query', '-q', default='', help='Filter by title, username, url, notes or tag.')
@click.option('--folder', default=ALL_FOLDERS)
def list_items(master, query, folder):
	"""List items (id, title, username)."""
	with open_vault(master) as engine:
		items = engine.search(query, folder)
		for i in items:
			tags = f" [{', '.join(sorted(i.tags))}]" if i.tags else ''
			where = f" ({i.folder})" if i.folder else ''
			click.echo(f"{i.id}: {i.title} <{i.username}>{where}{tags}")
		if not items:
			click.echo('No items.')

@cli.command()
@master_option
def info(master):
	"""Show item count, folders and tags."""
	with open_vault(master) as engine:
		click.echo(f"Items: {len(engine.items)}")
		click.echo(f"Folders: {', '.join(engine.folders()[1:]) or '-'}")
		click.echo(f"Tags: {', '.join(engine.tags()) or '-'}")
		click.echo(f"Remote: {'configured' if engine.remote else 'not configured'}")

@cli.command('add')
@master_option
@click.option('--title', prompt=True)
@click.option('--username', default='')
@click.option('--password', 'secret', default=None, help='Item password (prompted if omitted and not generated).')
@click.option('--generate', 'gen', is_flag=True, help='Generate the item password.')
@click.option('--url', default='')
@click.option('--notes', default='')
@click.option('--tag', 'tags', multiple=True)
@click.option('--folder', default='')
def add_item(master, title, username, secret, gen, url, notes, tags, folder):
	"""Add an item."""
	if gen:
		secret = generate(PasswordOptions())
	elif secret is None:
		secret = click.prompt('Item password', hide_input=True, default='', show_default=False)
	with open_vault(master) as engine:
		item = engine.create_item(title=title, username=username, password=secret, url=url, notes=notes, tags=list(tags), folder=folder)
		click.echo(f'Added item {item.id}.')

@cli.command('edit')
@click.argument('item_id')
@master_option
@click.option('--title')
@click.option('--username')
@click.option('--password', 'secret')
@click.option('--url')
@click.option('--notes')
@click.option('--folder')
@click.option('--tag', 'tags', multiple=True, help='Replace tags.')
def edit_item(item_id, master, title, username, secret, url, notes, folder, tags):
	"""Edit fields of an item."""
	patch = {k: v for k, v in dict(title=title, username=username, password=secret, url=url, notes=notes, folder=folder).items() if v is not None}
	if tags: patch['tags'] = list(tags)
	if not patch:
		raise click.UsageError('Nothing to change.')
	with open_vault(master) as engine:
		try:
			engine.update(patch, item_id)
		except KeyError as e:
			raise click.ClickException(f'Not found: {item_id}') from e
		click.echo(f'Updated item {item_id}.')

@cli.command('delete')
@click.argument('item_id')
@master_option
def delete_item(item_id, master):
	"""Delete an item."""
	with open_vault(master) as engine:
		try:
			engine.delete(item_id)
		except KeyError as e:
			raise click.ClickException(f'Not found: {item_id}') from e
		click.echo(f'Deleted item {item_id}.')

@cli.command('show')
@click.argument('item_id')
@master_option
@click.option('--reveal', is_flag=True, help='Print the password instead of a mask.')
def show_item(item_id, master, reveal):
	"""Show an item."""
	with open_vault(master) as engine:
		try:
			i = engine.select(item_id)
		except KeyError as e:
			raise click.ClickException(f'Not found: {item_id}') from e
		pw = i.password if reveal else ('*' * 12 if i.password else '')
		click.echo(f"ID: {i.id}\nTitle: {i.title}\nUsername: {i.username}\nPassword: {pw}\nURL: {i.url}\nFolder: {i.folder or '-'}\nTags: {', '.join(sorted(i.tags)) or '-'}\n---\n{i.notes}")

@cli.command('copy')
@click.argument('item_id')
@master_option
@click.option('--clear-after', type=float, default=settings.CLIPBOARD_CLEAR_SECONDS, show_default=True, help='Seconds before the clipboard is cleared.')
def copy_password(item_id, master, clear_after):
	"""Copy an item's password to the clipboard, then clear it."""
	prefs = ClipboardPreferences.load()
	clip = SecureClipboard(clear_after=clear_after, use_primary=prefs.allows_system_clipboard)
	with open_vault(master, clipboard=clip) as engine:
		try:
			result = engine.copy_password(item_id)
		except KeyError as e:
			raise click.ClickException(f'Not found: {item_id}') from e
		except ValueError as e:
			raise click.ClickException(str(e)) from e
		except ClipboardUnavailable as e:
			click.echo('Clipboard unavailable. Copy the password manually:', err=True)
			click.echo(e.secret)
			return
		if not result.auto_clear:
			click.echo('Password copied (terminal clipboard); auto-clear is not available in this mode.')
			return
		click.echo(f'Password copied; clearing in {clear_after:g}s.')
		clip.wait(clear_after + 5)
		click.echo(f'Clipboard: {clip.state.value.replace("_", " ")}.')

@cli.command('generate')
@generator_options
@click.option('--apply', 'apply_to', metavar='ITEM_ID', help='Set the generated password on an item.')
def generate_cmd(length, no_upper, no_lower, no_numbers, no_symbols, exclude_look_alikes, apply_to):
	"""Generate a password."""
	opts = _options(length, no_upper, no_lower, no_numbers, no_symbols, exclude_look_alikes)
	try:
		pw = generate(opts)
	except ConfigurationError as e:
		raise click.BadParameter(str(e)) from e
	if apply_to:
		master = click.prompt('Master password', hide_input=True)
		with open_vault(master) as engine:
			try:
				engine.apply_generated_password(pw, apply_to)
			except KeyError as e:
				raise click.ClickException(f'Not found: {apply_to}') from e
		click.echo(f'Password updated on item {apply_to}.')
		return
	report = estimate_strength(pw)
	click.echo(pw)
	click.echo(f"{report.label} ({report.score}/4), pool {len(build_charset(opts))} chars, ~{entropy_bits(opts):.0f} bits", err=True)

@cli.command('strength')
@click.argument('password')
def strength_cmd(password):
	"""Estimate password strength (0-4)."""
	report = estimate_strength(password)
	click.echo(f"Score: {report.score}/4 -> {report.label}")
	for hint in report.feedback:
		click.echo(f"  - {hint}")

@cli.command('export')
@master_option
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path), default=None)
def export_cmd(master, output: Optional[Path]):
	"""Write an encrypted export file."""
	target = output or Path(default_export_name())
	with open_vault(master) as engine:
		target.write_text(engine.export_vault(), encoding='utf-8')
		click.echo(f'Exported {len(engine.items)} items to {target}')

@cli.command('import')
@click.argument('source', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@master_option
def import_cmd(source: Path, master):
	"""Merge items from an export file (existing ids are kept)."""
	text = source.read_text(encoding='utf-8')
	with open_vault(master) as engine:
		try:
			added = engine.import_vault(text)
		except (EnvelopeError, IntegrityError) as e:
			raise click.ClickException(f'Import failed: {e}') from e
		click.echo(f'Imported {added} new items.')

@cli.command('sync')
@master_option
def sync_cmd(master):
	"""Push the current vault to the remote store."""
	with open_vault(master) as engine:
		if engine.remote is None:
			raise click.ClickException('No remote configured (set ZKVAULT_REMOTE_URL and ZKVAULT_TOKEN)')
		try:
			engine.push()
		except SyncError as e:
			raise click.ClickException(f'Sync failed: {e}') from e
		click.echo(f'Synced {len(engine.items)} items.')

@cli.group()
def clipboard():
	"""Clipboard permission (system clipboard vs. terminal fallback)."""

@clipboard.command('status')
def clipboard_status():
	click.echo(ClipboardPreferences.load().status)

@clipboard.command('grant')
def clipboard_grant():
	ClipboardPreferences.load().grant()
	click.echo('System clipboard enabled.')

@clipboard.command('deny')
def clipboard_deny():
	ClipboardPreferences.load().deny()
	click.echo('System clipboard disabled; copies use the terminal fallback.')
