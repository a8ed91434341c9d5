import io
import pytest
from zkvault.lib.clipboard import (
    ClipboardError, ClipboardReadError, ClipboardUnavailable, CopyState, SecureClipboard, TerminalBackend,
)

class MemoryClipboard:
    readable = True

    def __init__(self, fail_write=False, fail_read=False, fail_clear=False):
        self.content = ''
        self.fail_write, self.fail_read, self.fail_clear = fail_write, fail_read, fail_clear
        self.writes = []
        self.on_read = None

    def write(self, text):
        if self.fail_write or (self.fail_clear and text == ''):
            raise ClipboardError('denied')
        self.writes.append(text)
        self.content = text

    def read(self):
        if self.fail_read:
            raise ClipboardReadError('denied')
        value = self.content
        if self.on_read:
            hook, self.on_read = self.on_read, None
            hook()
        return value

class ManualTimer:
    def __init__(self, interval, fn):
        self.interval, self.fn = interval, fn
        self.started = self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn()

def make(primary=None, fallback=None, **kw):
    timers = []
    def factory(interval, fn):
        t = ManualTimer(interval, fn); timers.append(t); return t
    clip = SecureClipboard(primary or MemoryClipboard(), fallback or MemoryClipboard(fail_write=True), timer_factory=factory, **kw)
    return clip, timers

def test_copy_then_auto_clear():
    clip, timers = make()
    res = clip.copy('secret1')
    assert res.mode == 'primary' and res.auto_clear and res.clear_after == 12
    assert clip.primary.content == 'secret1' and clip.pending and clip.state is CopyState.COPIED
    timers[0].fire()
    assert clip.primary.content == '' and clip.state is CopyState.AUTO_CLEARED
    assert not clip.pending and clip.wait(0)

def test_user_copied_something_else():
    clip, timers = make()
    clip.copy('secret1')
    clip.primary.content = 'shopping list'
    timers[0].fire()
    assert clip.primary.content == 'shopping list'
    assert clip.state is CopyState.SUPERSEDED

def test_second_copy_replaces_pending_timer():
    clip, timers = make()
    clip.copy('secret1'); clip.copy('secret2')
    assert len(timers) == 2 and timers[0].cancelled and not timers[1].cancelled
    # a stale callback that slipped past cancel() is ignored
    timers[0].fn()
    assert clip.primary.content == 'secret2' and clip.pending
    timers[1].fire()
    assert clip.primary.content == '' and clip.state is CopyState.AUTO_CLEARED

def test_second_timer_checks_latest_secret():
    clip, timers = make()
    clip.copy('secret1'); clip.copy('secret2')
    clip.primary.content = 'secret1'
    timers[1].fire()
    assert clip.primary.content == 'secret1' and clip.state is CopyState.SUPERSEDED

def test_unreadable_clipboard_is_cleared_anyway():
    clip, timers = make(primary=MemoryClipboard(fail_read=True))
    clip.copy('secret1')
    timers[0].fire()
    assert clip.primary.content == '' and clip.state is CopyState.AUTO_CLEARED

def test_clear_failure_is_reported():
    clip, timers = make(primary=MemoryClipboard(fail_clear=True))
    clip.copy('secret1')
    timers[0].fire()
    assert clip.state is CopyState.CLEAR_FAILED and clip.primary.content == 'secret1'

def test_cancel_leaves_clipboard_alone():
    clip, timers = make()
    clip.copy('secret1')
    clip.cancel()
    assert timers[0].cancelled and not clip.pending
    assert clip.primary.content == 'secret1' and clip.state is CopyState.CANCELLED
    timers[0].fn()
    assert clip.primary.content == 'secret1'

def test_fallback_has_no_auto_clear():
    fallback = MemoryClipboard()
    clip, timers = make(primary=MemoryClipboard(fail_write=True), fallback=fallback)
    res = clip.copy('secret1')
    assert res.mode == 'fallback' and not res.auto_clear
    assert fallback.content == 'secret1' and timers == [] and not clip.pending

def test_fallback_copy_cancels_earlier_timer():
    primary = MemoryClipboard(); fallback = MemoryClipboard()
    clip, timers = make(primary=primary, fallback=fallback)
    clip.copy('secret1')
    primary.fail_write = True
    clip.copy('secret2')
    assert timers[0].cancelled and not clip.pending

def test_denied_permission_skips_primary():
    primary = MemoryClipboard(); fallback = MemoryClipboard()
    clip, _ = make(primary=primary, fallback=fallback, use_primary=False)
    assert clip.copy('secret1').mode == 'fallback'
    assert primary.writes == []

def test_all_paths_fail():
    clip, _ = make(primary=MemoryClipboard(fail_write=True))
    with pytest.raises(ClipboardUnavailable) as exc:
        clip.copy('secret1')
    assert exc.value.secret == 'secret1'
    assert 'secret1' not in repr(exc.value)

def test_empty_text_rejected():
    clip, _ = make()
    with pytest.raises(ValueError):
        clip.copy('')

def test_real_timer_clears():
    clip = SecureClipboard(MemoryClipboard(), MemoryClipboard(fail_write=True), clear_after=0.05)
    clip.copy('secret1')
    assert clip.wait(2)
    assert clip.primary.content == '' and clip.state is CopyState.AUTO_CLEARED

class FakeTTY(io.StringIO):
    def isatty(self):
        return True

def test_terminal_backend_writes_osc52():
    stream = FakeTTY()
    TerminalBackend(stream).write('hi')
    assert stream.getvalue() == '\033]52;c;aGk=\a'
    with pytest.raises(ClipboardReadError):
        TerminalBackend(stream).read()

def test_terminal_backend_needs_tty():
    with pytest.raises(ClipboardError):
        TerminalBackend(io.StringIO()).write('hi')

def test_copy_while_timer_is_clearing():
    clip, timers = make()
    clip.copy('secret1')
    # the old timer has read 'secret1' when the next copy lands
    clip.primary.on_read = lambda: clip.copy('secret2')
    timers[0].fire()
    assert clip.primary.content == 'secret2'
    assert clip.state is CopyState.COPIED and clip.pending
    assert not clip.wait(0)
    timers[1].fire()
    assert clip.primary.content == '' and clip.state is CopyState.AUTO_CLEARED
    assert not clip.pending and clip.wait(0)

def test_cancel_while_timer_is_clearing():
    clip, timers = make()
    clip.copy('secret1')
    clip.primary.on_read = clip.cancel
    timers[0].fire()
    assert clip.primary.content == 'secret1' and clip.state is CopyState.CANCELLED
    assert not clip.pending and clip.wait(0)
