import pytest
from zkvault.lib.generator import (
    LOOK_ALIKES, LOWERCASE, NUMBERS, SYMBOLS, UPPERCASE,
    ConfigurationError, PasswordOptions, build_charset, estimate_strength, generate,
)

def has_all_classes(pw: str, opts: PasswordOptions) -> bool:
    return all(any(c in pool for c in pw) for pool in opts.classes().values())

def test_generate_length_and_all_classes():
    opts = PasswordOptions(length=16)
    for _ in range(200):
        pw = generate(opts)
        assert len(pw) == 16
        assert has_all_classes(pw, opts)

def test_short_passwords_still_cover_every_class():
    opts = PasswordOptions(length=4, exclude_look_alikes=True)
    for _ in range(500):
        pw = generate(opts)
        assert len(pw) == 4
        assert has_all_classes(pw, opts)

def test_no_classes_selected():
    with pytest.raises(ConfigurationError):
        generate(PasswordOptions(16, False, False, False, False))

@pytest.mark.parametrize('length', [0, 2, 3])
def test_too_short(length):
    with pytest.raises(ConfigurationError):
        generate(PasswordOptions(length=length))

def test_exclude_look_alikes():
    opts = PasswordOptions(length=64, exclude_look_alikes=True)
    assert not set(build_charset(opts)) & LOOK_ALIKES
    for _ in range(50):
        assert not set(generate(opts)) & LOOK_ALIKES

def test_single_class():
    pw = generate(PasswordOptions(12, False, False, True, False))
    assert len(pw) == 12 and all(c in NUMBERS for c in pw)

def test_charset_is_union_of_selected_classes():
    assert build_charset(PasswordOptions(8, True, False, False, True)) == UPPERCASE + SYMBOLS
    assert build_charset(PasswordOptions(8, False, True, False, False)) == LOWERCASE

def test_strength_common_word_is_weak():
    r = estimate_strength('password')
    assert r.score <= 1 and r.label in ('Very Weak', 'Weak')

def test_strength_strong_password():
    r = estimate_strength('K7#mQ2!xL9pR')
    assert r.score == 4 and r.label == 'Strong' and r.feedback == []

def test_strength_feedback_order_and_truncation():
    r = estimate_strength('')
    assert r.score == 1 and r.label == 'Weak'
    assert r.feedback == ['Use at least 8 characters', 'Include uppercase letters', 'Include lowercase letters']

def test_strength_repeats_and_patterns():
    r = estimate_strength('aaaBBB111!!!')
    assert r.score == 3 and r.label == 'Good'
    assert r.feedback == ['Avoid repeated characters']
    r2 = estimate_strength('Admin#2024xyz')
    assert 'Avoid common patterns' in r2.feedback
