"""Vault session: the in-memory item collection and its persistence.

Every change to the collection re-encrypts the whole collection, writes the
packet to the local cache, then hands it to a background `SyncWorker` for
upload. The local write is the durability floor; the upload is best effort.
"""
from __future__ import annotations
import logging, threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional
from .clipboard import CopyResult, SecureClipboard
from .crypto import CipherPacket, DerivedKey, IntegrityError, KeyDeriver, VaultCodec, VaultLockedError
from .items import (
	ALL_FOLDERS, VaultItem, available_folders, available_tags, filter_items, find_item
)
from .remote import RemoteStore, SyncError, VaultSnapshot
from .storage import LocalCache
from .transfer import export_envelope, parse_envelope

log = logging.getLogger(__name__)

@dataclass
class SyncStats:
	successes: int = 0
	failures: int = 0
	coalesced: int = 0
	last_error: Optional[str] = None


class SyncWorker:
	"""Uploads packets on a daemon thread, one at a time.

	Holds at most one queued job besides the one in flight; a new
	submission replaces the queued one, since each packet carries the
	full collection.
	"""

	def __init__(self, upload: Callable[[CipherPacket, int], Any], name: str = 'zkvault-sync'):
		self._upload = upload
		self._name = name
		self._cond = threading.Condition()
		self._queued: Optional[tuple[CipherPacket, int]] = None
		self._busy = False
		self._stopped = False
		self._thread: Optional[threading.Thread] = None
		self.stats = SyncStats()

	@property
	def stopped(self) -> bool:
		return self._stopped

	def submit(self, packet: CipherPacket, item_count: int) -> bool:
		with self._cond:
			if self._stopped: return False
			if self._queued is not None:
				self.stats.coalesced += 1
			self._queued = (packet, item_count)
			if self._thread is None:
				self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
				self._thread.start()
			self._cond.notify_all()
			return True

	def _run(self) -> None:
		while True:
			with self._cond:
				while self._queued is None and not self._stopped:
					self._cond.wait()
				if self._stopped: return
				packet, count = self._queued
				self._queued = None
				self._busy = True
			error: Optional[str] = None
			try:
				self._upload(packet, count)
			except SyncError as e:
				error = str(e)
				log.warning('Remote sync failed, local copy kept: %s', e)
			except Exception as e:
				# keep the worker alive; the next mutation retries
				error = str(e)
				log.exception('Unexpected error during remote sync')
			finally:
				with self._cond:
					if error is None:
						self.stats.successes += 1
					else:
						self.stats.failures += 1
					self.stats.last_error = error
					self._busy = False
					self._cond.notify_all()

	def snapshot(self) -> SyncStats:
		"""Copy of the counters, consistent with respect to the worker thread."""
		with self._cond:
			return replace(self.stats)

	def flush(self, timeout: float | None = None) -> bool:
		"""Wait until nothing is queued or in flight. False on timeout."""
		with self._cond:
			return self._cond.wait_for(lambda: self._stopped or (self._queued is None and not self._busy), timeout)

	def stop(self) -> None:
		"""Stop without waiting; a queued upload is dropped."""
		with self._cond:
			self._stopped = True
			self._queued = None
			self._cond.notify_all()


class VaultSyncEngine:
	def __init__(self, cache: LocalCache, remote: RemoteStore | None = None, *,
			codec: VaultCodec | None = None, deriver: KeyDeriver | None = None,
			clipboard: SecureClipboard | None = None, owner_ref: str = ''):
		self.cache = cache
		self.remote = remote
		self.codec = codec or VaultCodec()
		self.deriver = deriver or KeyDeriver()
		self.clipboard = clipboard
		self.owner_ref = owner_ref
		self.items: List[VaultItem] = []
		self.selected_id: Optional[str] = None
		self.active_folder = ALL_FOLDERS
		self._key: Optional[DerivedKey] = None
		self._last_packet: Optional[CipherPacket] = None
		self._worker: Optional[SyncWorker] = None

	# -- session -----------------------------------------------------------

	@property
	def unlocked(self) -> bool:
		return self._key is not None and not self._key.destroyed

	@property
	def stats(self) -> SyncStats:
		return self._worker.snapshot() if self._worker else SyncStats()

	def _require_key(self) -> DerivedKey:
		if not self.unlocked: raise VaultLockedError('Vault is locked')
		return self._key  # type: ignore[return-value]

	def _start_worker(self) -> None:
		if self.remote is not None and (self._worker is None or self._worker.stopped):
			self._worker = SyncWorker(self._upload)

	def create(self, key: DerivedKey) -> None:
		"""Start a brand-new empty vault under `key` and persist it."""
		if self._key is not None and self._key is not key:
			self._key.destroy()
		self._key = key
		self.items = []; self.selected_id = None
		self._start_worker()
		self._persist()

	def unlock(self, password: str, salt: bytes | None = None) -> int:
		if salt is None:
			_owner, salt = self.cache.read_session()
		return self.load(self.deriver.derive(password, salt))

	def load(self, key: DerivedKey, remote_fetch: Callable[[], Optional[VaultSnapshot]] | None = None) -> int:
		"""Decrypt the current vault with `key` and take ownership of it.

		The local cache is read first. Unsynced local changes win over the
		remote copy and are re-sent; otherwise the remote packet is used when
		reachable. A packet that does not decrypt raises VaultLockedError and
		leaves the engine untouched.
		"""
		local = self.cache.read_packet()
		unsynced = local is not None and self.cache.has_unsynced_changes()
		fetch = remote_fetch or (self.remote.fetch if self.remote is not None else None)
		packet, from_remote = local, False
		if fetch is not None and not unsynced:
			try:
				snap = fetch()
			except SyncError as e:
				log.warning('Remote vault unreachable, using local cache: %s', e)
			else:
				if snap is not None and snap.packet is not None:
					packet, from_remote = snap.packet, True
		items: List[VaultItem] = []
		if packet is not None:
			try:
				items = self.codec.decode(key, packet)
			except IntegrityError as e:
				log.error('Vault unlock failed: %s', e)
				raise VaultLockedError('Could not unlock vault') from e
		if self._key is not None and self._key is not key:
			self._key.destroy()
		self._key = key
		self.items = items; self.selected_id = None
		self._last_packet = packet
		self._start_worker()
		if from_remote:
			self.cache.write_packet(packet, synced=True)
		elif unsynced and fetch is not None:
			log.info('Re-sending unsynced local vault')
			self.resync()
		log.info('Vault unlocked (%d items)', len(items))
		return len(items)

	def sign_out(self) -> None:
		if self.clipboard is not None:
			self.clipboard.cancel()
		if self._key is not None:
			self._key.destroy()
		self._key = None
		if self._worker is not None:
			self._worker.stop()
		self.items = []; self.selected_id = None
		self._last_packet = None
		log.info('Signed out')

	lock = sign_out

	# -- persistence -------------------------------------------------------

	def _persist(self) -> CipherPacket:
		packet = self.codec.encode(self._require_key(), self.items)
		self.cache.write_packet(packet)
		self._last_packet = packet
		if self._worker is not None:
			self._worker.submit(packet, len(self.items))
		return packet

	def _upload(self, packet: CipherPacket, item_count: int) -> None:
		self.remote.upsert(packet, item_count)  # type: ignore[union-attr]
		self.cache.mark_synced(packet)

	def resync(self) -> bool:
		"""Queue the newest packet for upload again. False without a remote."""
		self._require_key()
		if self._worker is None: return False
		packet = self._last_packet or self._persist()
		return self._worker.submit(packet, len(self.items))

	def push(self) -> VaultSnapshot:
		"""Upload the current collection now, raising SyncError on failure."""
		self._require_key()
		if self.remote is None: raise SyncError('No remote configured')
		packet = self._last_packet or self._persist()
		snap = self.remote.upsert(packet, len(self.items))
		self.cache.mark_synced(packet)
		return snap

	def flush(self, timeout: float | None = None) -> bool:
		return self._worker.flush(timeout) if self._worker is not None else True

	# -- items -------------------------------------------------------------

	@property
	def selected(self) -> Optional[VaultItem]:
		visible = self.search(folder=self.active_folder) or self.items
		item = find_item(visible, self.selected_id)
		if item is None and self.selected_id is None and visible:
			return visible[0]
		return item

	def get(self, item_id: str) -> VaultItem:
		item = find_item(self.items, item_id)
		if item is None: raise KeyError(f"No item {item_id!r}")
		return item

	def select(self, item_id: str) -> VaultItem:
		item = self.get(item_id)
		self.selected_id = item.id
		return item

	def search(self, query: str = '', folder: str = ALL_FOLDERS) -> List[VaultItem]:
		return filter_items(self.items, query, folder)

	def tags(self) -> List[str]:
		return available_tags(self.items)

	def folders(self) -> List[str]:
		return available_folders(self.items)

	def create_item(self, **fields: Any) -> VaultItem:
		self._require_key()
		if 'folder' not in fields and self.active_folder != ALL_FOLDERS:
			fields['folder'] = self.active_folder
		item = VaultItem.create(**fields)
		self.items.insert(0, item)
		self.selected_id = item.id
		self._persist()
		return item

	def update(self, patch: Dict[str, Any], item_id: str | None = None) -> VaultItem:
		self._require_key()
		item = self.get(item_id) if item_id is not None else self.selected
		if item is None: raise KeyError('No item selected')
		item.apply(patch)
		self._persist()
		return item

	mutate = update

	def apply_generated_password(self, value: str, item_id: str | None = None) -> VaultItem:
		return self.update({'password': value}, item_id)

	def delete(self, item_id: str | None = None) -> VaultItem:
		self._require_key()
		item = self.get(item_id) if item_id is not None else self.selected
		if item is None: raise KeyError('No item selected')
		self.items = [i for i in self.items if i.id != item.id]
		if self.selected_id == item.id or item_id is None:
			self.selected_id = None
		self._persist()
		return item

	def copy_password(self, item_id: str | None = None) -> CopyResult:
		if self.clipboard is None: raise RuntimeError('No clipboard configured')
		item = self.get(item_id) if item_id is not None else self.selected
		if item is None: raise KeyError('No item selected')
		if not item.password: raise ValueError(f"Item {item.id} has no password")
		return self.clipboard.copy(item.password)

	# -- transfer ----------------------------------------------------------

	def export_vault(self) -> str:
		return export_envelope(self.codec, self._require_key(), self.items)

	def import_vault(self, text: str) -> int:
		"""Merge items from an export file; existing ids win. Returns items added."""
		incoming = parse_envelope(text, self.codec, self._require_key())
		known = {i.id for i in self.items}
		fresh: List[VaultItem] = []
		for item in incoming:
			if item.id in known: continue
			known.add(item.id); fresh.append(item)
		if fresh:
			self.items = fresh + self.items
			self._persist()
		log.info('Imported %d new items (%d skipped)', len(fresh), len(incoming) - len(fresh))
		return len(fresh)
