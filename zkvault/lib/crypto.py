"""Key derivation and the authenticated vault codec.

The derived key lives in a `DerivedKey` handle: the raw bytes are never
returned to callers, only handed to the codec, and are zeroed on `destroy()`.
"""
from __future__ import annotations
import base64, binascii, hmac, json, logging, secrets
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend
from config.settings import (
	DEFAULT_ITERATIONS, SALT_LENGTH, KEY_LENGTH, IV_LENGTH, AUTH_TAG_LENGTH,
	PACKET_VERSION, SUPPORTED_PACKET_VERSIONS
)
from .items import VaultItem

log = logging.getLogger(__name__)

class CryptoError(Exception):
	pass

class IntegrityError(Exception):
	"""Packet failed authentication or is not a packet we can read."""

class UnsupportedVersionError(IntegrityError):
	pass

class VaultLockedError(IntegrityError):
	"""The vault could not be unlocked (or has been locked again)."""


class DerivedKey:
	__slots__ = ('_material', '_destroyed')

	def __init__(self, material: bytes):
		if len(material) != KEY_LENGTH: raise CryptoError("Bad key length")
		self._material = bytearray(material)
		self._destroyed = False

	@property
	def destroyed(self) -> bool:
		return self._destroyed

	def destroy(self) -> None:
		for i in range(len(self._material)):
			self._material[i] = 0
		self._destroyed = True

	def _bytes(self) -> bytes:
		if self.destroyed: raise VaultLockedError("Key destroyed")
		return bytes(self._material)

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, DerivedKey): return NotImplemented
		return hmac.compare_digest(bytes(self._material), bytes(other._material))

	__hash__ = None  # type: ignore[assignment]

	def __repr__(self) -> str:
		return '<DerivedKey destroyed>' if self.destroyed else '<DerivedKey>'

	__str__ = __repr__

	def __reduce__(self):
		raise TypeError("DerivedKey cannot be serialized")


class KeyDeriver:
	def __init__(self, iterations: int = DEFAULT_ITERATIONS):
		self.iterations = iterations
		self._backend = default_backend()

	def generate_salt(self) -> bytes:
		return secrets.token_bytes(SALT_LENGTH)

	def derive(self, password: str, salt: bytes) -> DerivedKey:
		if not salt: raise CryptoError("Salt empty")
		if not password: raise CryptoError("Password empty")
		kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=self.iterations, backend=self._backend)
		return DerivedKey(kdf.derive(password.encode('utf-8')))


def _b64(data: bytes) -> str:
	return base64.b64encode(data).decode('ascii')

def _unb64(text: Any, name: str) -> bytes:
	if not isinstance(text, str): raise IntegrityError(f"Packet field '{name}' missing")
	try:
		return base64.b64decode(text.encode('ascii'), validate=True)
	except (binascii.Error, UnicodeEncodeError) as e:
		raise IntegrityError(f"Packet field '{name}' is not base64") from e


@dataclass(frozen=True)
class CipherPacket:
	iv: bytes
	ciphertext: bytes
	version: int = PACKET_VERSION

	def to_wire(self) -> Dict[str, Any]:
		return {'iv': _b64(self.iv), 'ct': _b64(self.ciphertext), 'v': self.version}

	@classmethod
	def from_wire(cls, raw: Any) -> 'CipherPacket':
		if not isinstance(raw, dict): raise IntegrityError("Packet is not an object")
		missing = [k for k in ('iv', 'ct', 'v') if k not in raw]
		if missing: raise IntegrityError(f"Packet missing {', '.join(missing)}")
		v = raw['v']
		if not isinstance(v, int) or isinstance(v, bool): raise IntegrityError("Packet version must be an integer")
		return cls(_unb64(raw['iv'], 'iv'), _unb64(raw['ct'], 'ct'), v)

	@staticmethod
	def is_packet(raw: Any) -> bool:
		"""True when `raw` has the packet fields (the server's empty placeholder does not).

		Values are not checked here; `from_wire` and `VaultCodec.decode` reject bad ones.
		"""
		return isinstance(raw, dict) and all(k in raw for k in ('iv', 'ct', 'v'))


class VaultCodec:
	"""AES-256-GCM over the JSON document ``{"items": [...]}``."""

	def __init__(self, version: int = PACKET_VERSION):
		if version not in SUPPORTED_PACKET_VERSIONS: raise UnsupportedVersionError(f"Unsupported packet version {version}")
		self.version = version
		self._backend = default_backend()

	@staticmethod
	def _aad(version: int) -> bytes:
		return f"zkvault:v{version}".encode('ascii')

	def encode(self, key: DerivedKey, items: Iterable[VaultItem]) -> CipherPacket:
		payload = json.dumps({'items': [i.to_dict() for i in items]}, separators=(',', ':')).encode('utf-8')
		iv = secrets.token_bytes(IV_LENGTH)
		enc = Cipher(algorithms.AES(key._bytes()), modes.GCM(iv), backend=self._backend).encryptor()
		enc.authenticate_additional_data(self._aad(self.version))
		ct = enc.update(payload) + enc.finalize()
		return CipherPacket(iv, ct + enc.tag, self.version)

	def decode(self, key: DerivedKey, packet: CipherPacket) -> List[VaultItem]:
		if packet.version not in SUPPORTED_PACKET_VERSIONS:
			raise UnsupportedVersionError(f"Unsupported packet version {packet.version}")
		if len(packet.iv) != IV_LENGTH: raise IntegrityError("Bad IV length")
		if len(packet.ciphertext) < AUTH_TAG_LENGTH: raise IntegrityError("Ciphertext too short")
		ct, tag = packet.ciphertext[:-AUTH_TAG_LENGTH], packet.ciphertext[-AUTH_TAG_LENGTH:]
		dec = Cipher(algorithms.AES(key._bytes()), modes.GCM(packet.iv, tag), backend=self._backend).decryptor()
		dec.authenticate_additional_data(self._aad(packet.version))
		try:
			plain = dec.update(ct) + dec.finalize()
		except InvalidTag as e:
			raise IntegrityError("Cannot unlock vault: authentication failed") from e
		try:
			doc = json.loads(plain.decode('utf-8'))
			raw_items = doc['items']
			if not isinstance(raw_items, list): raise TypeError('items is not a list')
			return [VaultItem.from_dict(r) for r in raw_items]
		except (ValueError, KeyError, TypeError) as e:
			# authenticated but not a vault document
			raise IntegrityError(f"Invalid vault data structure: {e}") from e
