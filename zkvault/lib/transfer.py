"""Portable export envelope (a UTF-8 JSON text file).

    {"version": "1.0.0", "exportedAt": <epoch ms>, "itemCount": n, "encryptedData": {"iv", "ct", "v"}}

The envelope is validated before any decryption is attempted.
"""
from __future__ import annotations
import json
from datetime import date
from typing import List, Sequence
from config.settings import EXPORT_VERSION, SUPPORTED_EXPORT_VERSIONS, EXPORT_FILENAME
from .crypto import CipherPacket, DerivedKey, VaultCodec
from .items import VaultItem, now_ms

REQUIRED_FIELDS = ('version', 'exportedAt', 'itemCount', 'encryptedData')

class EnvelopeError(Exception):
	pass

def export_envelope(codec: VaultCodec, key: DerivedKey, items: Sequence[VaultItem]) -> str:
	envelope = {
		'version': EXPORT_VERSION,
		'exportedAt': now_ms(),
		'itemCount': len(items),
		'encryptedData': codec.encode(key, items).to_wire(),
	}
	return json.dumps(envelope, indent=2)

def parse_envelope(text: str, codec: VaultCodec, key: DerivedKey) -> List[VaultItem]:
	"""Validate an export file and return its items.

	Raises EnvelopeError for format problems and IntegrityError when the
	packet does not decrypt under `key`.
	"""
	try:
		env = json.loads(text)
	except ValueError as e:
		raise EnvelopeError(f"Export file is not JSON: {e}") from e
	if not isinstance(env, dict):
		raise EnvelopeError('Invalid export file format')
	missing = [f for f in REQUIRED_FIELDS if f not in env or env[f] is None]
	if missing:
		raise EnvelopeError(f"Export file missing {', '.join(missing)}")
	if env['version'] not in SUPPORTED_EXPORT_VERSIONS:
		raise EnvelopeError(f"Unsupported export version {env['version']!r}")
	if not isinstance(env['itemCount'], int) or not isinstance(env['exportedAt'], (int, float)):
		raise EnvelopeError('Invalid export metadata')
	if not CipherPacket.is_packet(env['encryptedData']):
		raise EnvelopeError('Export file has no encrypted payload')
	return codec.decode(key, CipherPacket.from_wire(env['encryptedData']))

def default_export_name(today: date | None = None) -> str:
	return EXPORT_FILENAME.format(date=(today or date.today()).isoformat())
