"""Project configuration settings.

Constants are fixed here; runtime locations (vault home, remote endpoint,
token) come from the environment and are resolved at call time so tests
can override them with monkeypatch.
"""

from pathlib import Path
import os

# Security / crypto
DEFAULT_ITERATIONS = 200_000  # PBKDF2-HMAC-SHA256 work factor
SALT_LENGTH = 16
KEY_LENGTH = 32  # AES-256
IV_LENGTH = 12   # GCM nonce
AUTH_TAG_LENGTH = 16  # GCM tag length
PACKET_VERSION = 1
SUPPORTED_PACKET_VERSIONS = (1,)

# Export envelope
EXPORT_VERSION = "1.0.0"
SUPPORTED_EXPORT_VERSIONS = ("1.0.0",)
EXPORT_FILENAME = "zkvault-backup-{date}.json"

# Password generator
MIN_PASSWORD_LENGTH = 4
DEFAULT_PASSWORD_LENGTH = 16

# Clipboard
CLIPBOARD_CLEAR_SECONDS = 12

# Remote store
REMOTE_VAULT_PATH = "/api/vault/sync"
REQUEST_TIMEOUT = 15.0

# Local files
DEFAULT_HOME = Path("vault_data")
CACHE_FILENAME = "cache.json"
SETTINGS_FILENAME = "settings.json"
CACHE_SLOT_CIPHER = "cipher"
CACHE_SLOT_SESSION = "session"
CACHE_SLOT_SYNCED = "synced"

# Logging
LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def vault_home() -> Path:
	env = os.environ.get("ZKVAULT_HOME")
	return Path(env) if env else DEFAULT_HOME

def cache_path() -> Path:
	return vault_home() / CACHE_FILENAME

def settings_path() -> Path:
	return vault_home() / SETTINGS_FILENAME

def remote_url() -> str | None:
	return os.environ.get("ZKVAULT_REMOTE_URL") or None

def remote_token() -> str | None:
	return os.environ.get("ZKVAULT_TOKEN") or None

def log_level() -> str:
	return os.environ.get("ZKVAULT_LOG_LEVEL", LOG_LEVEL).upper()


__all__ = [
	'DEFAULT_ITERATIONS','SALT_LENGTH','KEY_LENGTH','IV_LENGTH','AUTH_TAG_LENGTH',
	'PACKET_VERSION','SUPPORTED_PACKET_VERSIONS','EXPORT_VERSION','SUPPORTED_EXPORT_VERSIONS',
	'EXPORT_FILENAME','MIN_PASSWORD_LENGTH','DEFAULT_PASSWORD_LENGTH','CLIPBOARD_CLEAR_SECONDS',
	'REMOTE_VAULT_PATH','REQUEST_TIMEOUT','DEFAULT_HOME','CACHE_FILENAME','SETTINGS_FILENAME',
	'CACHE_SLOT_CIPHER','CACHE_SLOT_SESSION','CACHE_SLOT_SYNCED','LOG_LEVEL','LOG_FORMAT',
	'vault_home','cache_path','settings_path','remote_url','remote_token','log_level'
]
