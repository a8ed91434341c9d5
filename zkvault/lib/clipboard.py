"""Copy secrets to the clipboard with a verified, cancellable auto-clear.

Backends are small capabilities with `write(text)` and `read()`:

- `PyperclipBackend` talks to the system clipboard and can read back, so
  copies made through it are cleared after `clear_after` seconds, but only
  if the clipboard still holds the copied secret.
- `TerminalBackend` is the fallback. It writes an OSC 52 escape sequence to
  the terminal, which most emulators forward to the clipboard. It cannot
  read, so nothing copied that way is verified or cleared.

When both fail, `ClipboardUnavailable` carries the secret so the caller can
show it for manual copying.
"""
from __future__ import annotations
import base64, enum, logging, sys, threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TextIO
import pyperclip
from config.settings import CLIPBOARD_CLEAR_SECONDS

log = logging.getLogger(__name__)

class ClipboardError(Exception): ...
class ClipboardReadError(ClipboardError): ...

class ClipboardUnavailable(Exception):
	def __init__(self, secret: str, reason: str = 'No clipboard available'):
		super().__init__(reason)
		self.secret = secret

	def __repr__(self) -> str:
		return f"ClipboardUnavailable({self.args[0]!r})"


class ClipboardBackend(Protocol):
	readable: bool
	def write(self, text: str) -> None: ...
	def read(self) -> str: ...


class PyperclipBackend:
	readable = True

	def write(self, text: str) -> None:
		try:
			pyperclip.copy(text)
		except pyperclip.PyperclipException as e:
			raise ClipboardError(str(e)) from e

	def read(self) -> str:
		try:
			return pyperclip.paste()
		except pyperclip.PyperclipException as e:
			raise ClipboardReadError(str(e)) from e


class TerminalBackend:
	readable = False

	def __init__(self, stream: TextIO | None = None):
		self.stream = stream

	def write(self, text: str) -> None:
		stream = self.stream or sys.stderr
		if not stream.isatty():
			raise ClipboardError('Terminal clipboard needs a tty')
		payload = base64.b64encode(text.encode('utf-8')).decode('ascii')
		stream.write(f"\033]52;c;{payload}\a")
		stream.flush()

	def read(self) -> str:
		raise ClipboardReadError('Terminal clipboard is write-only')


class CopyState(enum.Enum):
	IDLE = 'idle'
	COPIED = 'copied'
	AUTO_CLEARED = 'auto_cleared'
	SUPERSEDED = 'superseded'
	CLEAR_FAILED = 'clear_failed'
	CANCELLED = 'cancelled'

@dataclass
class CopyResult:
	mode: str  # 'primary' or 'fallback'
	auto_clear: bool
	clear_after: float

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class SecureClipboard:
	def __init__(self, primary: ClipboardBackend | None = None, fallback: ClipboardBackend | None = None,
			clear_after: float = CLIPBOARD_CLEAR_SECONDS, timer_factory: TimerFactory = threading.Timer,
			use_primary: bool = True):
		self.primary = primary if primary is not None else PyperclipBackend()
		self.fallback = fallback if fallback is not None else TerminalBackend()
		self.clear_after = clear_after
		self.use_primary = use_primary
		self._timer_factory = timer_factory
		self._lock = threading.Lock()
		self._timer: Optional[threading.Timer] = None
		self._generation = 0
		self._done = threading.Event()
		self._done.set()
		self.state = CopyState.IDLE

	@property
	def pending(self) -> bool:
		with self._lock:
			return self._timer is not None

	def copy(self, text: str) -> CopyResult:
		if not text:
			raise ValueError('Cannot copy empty text')
		if self.use_primary:
			# write and reschedule are atomic with respect to a firing timer
			with self._lock:
				try:
					self.primary.write(text)
				except ClipboardError as e:
					log.info('Primary clipboard failed (%s); trying fallback', e)
				else:
					self._schedule(text)
					log.info('Copied to clipboard; clearing in %ss', self.clear_after)
					return CopyResult('primary', True, self.clear_after)
		try:
			self.fallback.write(text)
		except ClipboardError as e:
			log.warning('All clipboard methods failed: %s', e)
			raise ClipboardUnavailable(text, 'Copy failed on all clipboard paths') from e
		# a fallback copy still supersedes whatever was scheduled before it
		self.cancel()
		self.state = CopyState.COPIED
		log.info('Copied via fallback; auto-clear not available')
		return CopyResult('fallback', False, 0)

	def _schedule(self, text: str) -> None:
		# caller holds _lock
		if self._timer is not None:
			self._timer.cancel()
		self._generation += 1
		gen = self._generation
		timer = self._timer_factory(self.clear_after, lambda: self._fire(gen, text))
		timer.daemon = True
		self._timer = timer
		self._done.clear()
		self.state = CopyState.COPIED
		timer.start()

	def _fire(self, generation: int, original: str) -> None:
		with self._lock:
			if generation != self._generation or self._timer is None:
				return  # replaced or cancelled
		state = self._clear_if_unchanged(generation, original)
		with self._lock:
			# a copy() or cancel() that landed meanwhile owns state and _done
			if generation != self._generation:
				return
			self._timer = None
			self.state = state
			self._done.set()

	def _clear_if_unchanged(self, generation: int, original: str) -> CopyState:
		try:
			current = self.primary.read()
		except ClipboardError:
			log.info('Cannot read clipboard; clearing anyway')
		else:
			if current != original:
				log.info('Clipboard content changed; skipping clear')
				return CopyState.SUPERSEDED
		with self._lock:
			if generation != self._generation:
				return CopyState.SUPERSEDED
			try:
				self.primary.write('')
			except ClipboardError as e:
				log.warning('Could not clear clipboard: %s', e)
				return CopyState.CLEAR_FAILED
		log.info('Clipboard cleared')
		return CopyState.AUTO_CLEARED

	def cancel(self) -> None:
		"""Drop any pending clear without touching the clipboard."""
		with self._lock:
			if self._timer is None:
				return
			self._timer.cancel()
			self._timer = None
			self._generation += 1
			self.state = CopyState.CANCELLED
			self._done.set()

	def wait(self, timeout: float | None = None) -> bool:
		"""Block until no clear is pending. False if `timeout` expired first."""
		return self._done.wait(timeout)
