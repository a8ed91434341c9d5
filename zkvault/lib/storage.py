"""Local persistence: the keyed cache slots and the clipboard preference file.

Nothing written here is plaintext vault data. The `cipher` slot holds the
latest CipherPacket wire form, the `session` slot holds owner + salt.
"""
from __future__ import annotations
import base64, binascii, json, logging, os, threading
from pathlib import Path
from typing import Any, Dict, Optional
from config import settings
from .crypto import CipherPacket

log = logging.getLogger(__name__)

class StorageError(Exception): ...

def _atomic_write(path: Path, text: str) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_suffix(path.suffix + '.tmp')
	tmp.write_text(text, encoding='utf-8')
	os.replace(tmp, path)


class LocalCache:
	def __init__(self, path: Path | None = None):
		# resolved lazily so ZKVAULT_HOME overrides in tests are honoured
		self.path = Path(path) if path is not None else settings.cache_path()
		self._lock = threading.RLock()

	def exists(self) -> bool:
		return self.path.exists() and self.path.stat().st_size > 0

	def _read_all(self) -> Dict[str, Any]:
		if not self.exists(): return {}
		try:
			data = json.loads(self.path.read_text(encoding='utf-8'))
		except (OSError, ValueError) as e:
			raise StorageError(f"Unreadable cache {self.path}: {e}") from e
		if not isinstance(data, dict): raise StorageError('Corrupt cache')
		return data

	def read(self, slot: str) -> Optional[Any]:
		with self._lock:
			return self._read_all().get(slot)

	def write(self, slot: str, value: Any) -> None:
		self.update({slot: value})

	def update(self, values: Dict[str, Any]) -> None:
		# the sync worker thread writes here too
		with self._lock:
			data = self._read_all()
			data.update(values)
			_atomic_write(self.path, json.dumps(data, indent=2))

	def remove(self) -> None:
		with self._lock:
			self.path.unlink(missing_ok=True)

	# typed helpers

	def read_packet(self) -> Optional[CipherPacket]:
		raw = self.read(settings.CACHE_SLOT_CIPHER)
		if not CipherPacket.is_packet(raw): return None
		return CipherPacket.from_wire(raw)

	def write_packet(self, packet: CipherPacket, synced: bool = False) -> None:
		values: Dict[str, Any] = {settings.CACHE_SLOT_CIPHER: packet.to_wire()}
		if synced: values[settings.CACHE_SLOT_SYNCED] = values[settings.CACHE_SLOT_CIPHER]['iv']
		self.update(values)

	def mark_synced(self, packet: CipherPacket) -> None:
		self.write(settings.CACHE_SLOT_SYNCED, packet.to_wire()['iv'])

	def has_unsynced_changes(self) -> bool:
		"""True when the cached packet was never confirmed by the remote store."""
		with self._lock:
			data = self._read_all()
		cipher = data.get(settings.CACHE_SLOT_CIPHER)
		if not CipherPacket.is_packet(cipher): return False
		return cipher['iv'] != data.get(settings.CACHE_SLOT_SYNCED)

	def read_session(self) -> tuple[str, bytes]:
		raw = self.read(settings.CACHE_SLOT_SESSION)
		if not isinstance(raw, dict) or not raw.get('salt'):
			raise StorageError('Vault not initialised (run `zkvault init`)')
		try:
			salt = base64.b64decode(raw['salt'], validate=True)
		except (binascii.Error, TypeError) as e:
			raise StorageError('Corrupt session salt') from e
		return str(raw.get('owner') or ''), salt

	def write_session(self, owner: str, salt: bytes) -> None:
		self.write(settings.CACHE_SLOT_SESSION, {'owner': owner, 'salt': base64.b64encode(salt).decode('ascii')})


class ClipboardPreferences:
	"""Whether the user allowed system clipboard access.

	Loaded once per session with `load()`. The only mutation points are
	`grant()` and `deny()`; both persist immediately.
	"""
	UNKNOWN, GRANTED, DENIED = 'unknown', 'granted', 'denied'

	def __init__(self, path: Path | None = None):
		self.path = Path(path) if path is not None else settings.settings_path()
		self._status = self.UNKNOWN

	@classmethod
	def load(cls, path: Path | None = None) -> 'ClipboardPreferences':
		prefs = cls(path)
		if prefs.path.exists():
			try:
				raw = json.loads(prefs.path.read_text(encoding='utf-8'))
			except (OSError, ValueError):
				log.warning('Ignoring unreadable settings file %s', prefs.path)
				raw = {}
			if isinstance(raw, dict) and raw.get('clipboardPermissionAsked'):
				prefs._status = prefs.GRANTED if raw.get('clipboardPermissionGranted') else prefs.DENIED
		return prefs

	@property
	def status(self) -> str:
		return self._status

	@property
	def asked(self) -> bool:
		return self._status != self.UNKNOWN

	@property
	def allows_system_clipboard(self) -> bool:
		return self._status != self.DENIED

	def grant(self) -> None:
		self._set(self.GRANTED)

	def deny(self) -> None:
		self._set(self.DENIED)

	def _set(self, status: str) -> None:
		self._status = status
		_atomic_write(self.path, json.dumps({
			'clipboardPermissionAsked': True,
			'clipboardPermissionGranted': status == self.GRANTED,
		}, indent=2))
		log.info('Clipboard permission %s', status)
