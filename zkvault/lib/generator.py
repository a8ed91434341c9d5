"""Password generation and strength estimation."""
from __future__ import annotations
import math, re, secrets
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
from config.settings import MIN_PASSWORD_LENGTH, DEFAULT_PASSWORD_LENGTH

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
NUMBERS = "0123456789"
SYMBOLS = "!@#$%^&*()-_=+[]{};:,.?/"
LOOK_ALIKES = frozenset("0Oo1lIL")

LABELS = ("Very Weak", "Weak", "Fair", "Good", "Strong")
COMMON_PATTERNS = re.compile(r'123|abc|qwe|password|admin', re.IGNORECASE)
REPEATED = re.compile(r'(.)\1{2,}')

class ConfigurationError(Exception):
	pass

@dataclass
class PasswordOptions:
	length: int = DEFAULT_PASSWORD_LENGTH
	include_uppercase: bool = True
	include_lowercase: bool = True
	include_numbers: bool = True
	include_symbols: bool = True
	exclude_look_alikes: bool = False

	def classes(self) -> Dict[str, str]:
		"""Selected class name -> its characters (look-alikes already removed)."""
		picked = {
			'uppercase': UPPERCASE if self.include_uppercase else '',
			'lowercase': LOWERCASE if self.include_lowercase else '',
			'numbers': NUMBERS if self.include_numbers else '',
			'symbols': SYMBOLS if self.include_symbols else '',
		}
		if self.exclude_look_alikes:
			picked = {k: ''.join(c for c in v if c not in LOOK_ALIKES) for k, v in picked.items()}
		return {k: v for k, v in picked.items() if v}

@dataclass
class StrengthReport:
	score: int
	label: str
	feedback: List[str] = field(default_factory=list)


def build_charset(options: PasswordOptions) -> str:
	return ''.join(options.classes().values())

def _class_of(ch: str, classes: Dict[str, str]) -> Optional[str]:
	return next((name for name, chars in classes.items() if ch in chars), None)

def generate(options: PasswordOptions) -> str:
	"""Generate a password from `options` using the `secrets` CSPRNG.

	After the initial draw, every selected class that is missing gets one
	position overwritten with a character of that class. Repairs never
	reuse a position written by an earlier repair and never overwrite the
	last remaining character of another class, so with length >= 4 all
	selected classes are always present.
	"""
	charset = build_charset(options)
	if not charset:
		raise ConfigurationError("No character types selected")
	if options.length < MIN_PASSWORD_LENGTH:
		raise ConfigurationError(f"Password length must be at least {MIN_PASSWORD_LENGTH} characters")
	classes = options.classes()
	chars = [secrets.choice(charset) for _ in range(options.length)]
	reserved: Set[int] = set()
	for name, pool in classes.items():
		if any(c in pool for c in chars):
			continue
		counts = Counter(_class_of(c, classes) for c in chars)
		spare = [i for i in range(len(chars)) if i not in reserved and counts[_class_of(chars[i], classes)] > 1]
		pos = secrets.choice(spare)
		chars[pos] = secrets.choice(pool)
		reserved.add(pos)
	return ''.join(chars)

def entropy_bits(options: PasswordOptions) -> float:
	charset = build_charset(options)
	return options.length * math.log2(len(charset)) if charset else 0.0

def estimate_strength(password: str) -> StrengthReport:
	score = 0.0; fb: List[str] = []
	L = len(password)
	if L >= 12: score += 1
	elif L >= 8: score += 0.5
	else: fb.append("Use at least 8 characters")
	checks = [
		(any(c in UPPERCASE for c in password), "Include uppercase letters"),
		(any(c in LOWERCASE for c in password), "Include lowercase letters"),
		(any(c in NUMBERS for c in password), "Include numbers"),
		(any(c in SYMBOLS for c in password), "Include symbols"),
		(not REPEATED.search(password), "Avoid repeated characters"),
		(not COMMON_PATTERNS.search(password), "Avoid common patterns"),
	]
	for ok, hint in checks:
		if ok: score += 0.5
		else: fb.append(hint)
	final = min(4, math.floor(score))
	return StrengthReport(final, LABELS[final], fb[:3])
