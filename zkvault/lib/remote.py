"""HTTP client for the remote vault store.

The server only ever sees the packet wire form and an item-count hint:

    GET  <base>/api/vault/sync  -> {"success": true, "vault": {"encryptedData": {...}, "lastSyncAt": ..., "itemCount": n}}
    POST <base>/api/vault/sync  <- {"encryptedData": {"iv", "ct", "v"}, "itemCount": n}

A vault that was never written comes back as success with a placeholder
`encryptedData` (no iv/ct/v); `fetch()` maps that to `packet=None`.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
import httpx
from config import settings
from .crypto import CipherPacket, IntegrityError

log = logging.getLogger(__name__)

class SyncError(Exception):
	pass

@dataclass
class VaultSnapshot:
	owner_ref: str
	packet: Optional[CipherPacket]
	item_count: int  # display hint only, never trusted
	last_sync_at: Optional[datetime]


def _parse_time(value: Any) -> Optional[datetime]:
	if not isinstance(value, str): return None
	try:
		return datetime.fromisoformat(value.replace('Z', '+00:00'))
	except ValueError:
		return None


class RemoteStore:
	def __init__(self, base_url: str, token: str, owner_ref: str = '', *,
			path: str = settings.REMOTE_VAULT_PATH, timeout: float = settings.REQUEST_TIMEOUT,
			transport: httpx.BaseTransport | None = None):
		self.owner_ref = owner_ref
		self.path = path
		self._client = httpx.Client(
			base_url=base_url,
			headers={'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'},
			timeout=timeout,
			transport=transport,
		)

	@classmethod
	def from_env(cls, owner_ref: str = '') -> Optional['RemoteStore']:
		url, token = settings.remote_url(), settings.remote_token()
		if not url or not token: return None
		return cls(url, token, owner_ref)

	def close(self) -> None:
		self._client.close()

	def __enter__(self): return self
	def __exit__(self, *exc): self.close()

	def _request(self, method: str, json: Dict[str, Any] | None = None) -> Dict[str, Any]:
		try:
			resp = self._client.request(method, self.path, json=json)
		except httpx.HTTPError as e:
			raise SyncError(f"{method} {self.path} failed: {e}") from e
		try:
			body = resp.json()
		except ValueError:
			body = None
		if resp.is_error:
			err = body.get('error') if isinstance(body, dict) else None
			raise SyncError(f"{method} {self.path} -> HTTP {resp.status_code}: {err or resp.reason_phrase}")
		if not isinstance(body, dict):
			raise SyncError(f"{method} {self.path}: response is not a JSON object")
		if not body.get('success'):
			raise SyncError(body.get('error') or 'Remote store reported failure')
		return body

	def _snapshot(self, vault: Any) -> VaultSnapshot:
		if not isinstance(vault, dict):
			return VaultSnapshot(self.owner_ref, None, 0, None)
		raw = vault.get('encryptedData')
		try:
			packet = CipherPacket.from_wire(raw) if CipherPacket.is_packet(raw) else None
		except IntegrityError as e:
			raise SyncError(f"Remote packet malformed: {e}") from e
		count = vault.get('itemCount')
		return VaultSnapshot(self.owner_ref, packet, count if isinstance(count, int) else 0, _parse_time(vault.get('lastSyncAt')))

	def fetch(self) -> VaultSnapshot:
		body = self._request('GET')
		snap = self._snapshot(body.get('vault'))
		log.debug('Fetched remote vault (packet=%s, hint=%d items)', snap.packet is not None, snap.item_count)
		return snap

	def upsert(self, packet: CipherPacket, item_count: int) -> VaultSnapshot:
		wire = packet.to_wire()
		if not all(wire.get(k) for k in ('iv', 'ct', 'v')):
			raise SyncError('Refusing to send incomplete packet')
		body = self._request('POST', json={'encryptedData': wire, 'itemCount': item_count})
		snap = self._snapshot(body.get('vault'))
		log.info('Remote vault updated (%d items)', item_count)
		return snap
