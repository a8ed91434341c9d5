"""Vault item model plus the search / folder / tag helpers the CLI lists with."""
from __future__ import annotations
import secrets, string, time
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, Iterable, List, Optional

ALL_FOLDERS = "All Items"
ID_ALPHABET = string.ascii_letters + string.digits + '_-'
ID_LENGTH = 21
EDITABLE_FIELDS = ('title', 'username', 'password', 'url', 'notes', 'tags', 'folder')

def new_item_id() -> str:
	# first character is alphanumeric so an id never parses as a CLI option
	head = secrets.choice(ID_ALPHABET[:-2])
	return head + ''.join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH - 1))

def now_ms() -> int:
	return int(time.time() * 1000)

def normalize_tags(tags: Iterable[str] | None) -> List[str]:
	seen: Dict[str, None] = {}
	for t in tags or []:
		t = str(t).strip()
		if t: seen.setdefault(t, None)
	return list(seen)


@dataclass
class VaultItem:
	id: str
	title: str = ''
	username: str = ''
	password: str = ''
	url: str = ''
	notes: str = ''
	tags: List[str] = field(default_factory=list)
	folder: str = ''
	updated_at: int = 0

	def __post_init__(self):
		self.tags = normalize_tags(self.tags)
		if not self.updated_at:
			self.updated_at = now_ms()

	def __repr__(self) -> str:
		return f"VaultItem(id={self.id!r}, title={self.title!r})"

	def __eq__(self, other: object) -> bool:
		if not isinstance(other, VaultItem): return NotImplemented
		mine = asdict(self); theirs = asdict(other)
		mine['tags'] = sorted(mine['tags']); theirs['tags'] = sorted(theirs['tags'])
		return mine == theirs

	@classmethod
	def create(cls, **values: Any) -> 'VaultItem':
		values.setdefault('title', 'New Item')
		unknown = set(values) - set(EDITABLE_FIELDS)
		if unknown: raise KeyError(f"Unknown item field(s): {', '.join(sorted(unknown))}")
		return cls(id=new_item_id(), **values)

	def apply(self, patch: Dict[str, Any]) -> None:
		"""Apply a field patch and bump `updated_at`.

		`id` and `updated_at` are not patchable; unknown keys raise KeyError.
		"""
		bad = set(patch) - set(EDITABLE_FIELDS)
		if bad: raise KeyError(f"Field(s) not editable: {', '.join(sorted(bad))}")
		for k, v in patch.items():
			setattr(self, k, normalize_tags(v) if k == 'tags' else ('' if v is None else str(v)))
		self.touch()

	def touch(self) -> None:
		# strictly increasing even when two edits land in the same millisecond
		self.updated_at = max(now_ms(), self.updated_at + 1)

	def matches(self, query: str) -> bool:
		q = query.strip().lower()
		if not q: return True
		hay = (self.title, self.username, self.url, self.notes)
		return any(q in h.lower() for h in hay) or any(q in t.lower() for t in self.tags)

	def to_dict(self) -> Dict[str, Any]:
		return {
			'id': self.id, 'title': self.title, 'username': self.username,
			'password': self.password, 'url': self.url, 'notes': self.notes,
			'tags': list(self.tags), 'folder': self.folder, 'updatedAt': self.updated_at,
		}

	@classmethod
	def from_dict(cls, raw: Dict[str, Any]) -> 'VaultItem':
		if not isinstance(raw, dict) or not raw.get('id'):
			raise ValueError('Item record without id')
		known = {f.name for f in fields(cls)}
		data = {k: v for k, v in raw.items() if k in known}
		if 'updatedAt' in raw: data['updated_at'] = int(raw['updatedAt'])
		for k in ('title', 'username', 'password', 'url', 'notes', 'folder'):
			if data.get(k) is None: data[k] = ''
		return cls(**data)


def filter_items(items: Iterable[VaultItem], query: str = '', folder: str = ALL_FOLDERS) -> List[VaultItem]:
	out = list(items)
	if folder and folder != ALL_FOLDERS:
		out = [i for i in out if i.folder == folder]
	return [i for i in out if i.matches(query)]

def available_tags(items: Iterable[VaultItem]) -> List[str]:
	return sorted({t for i in items for t in i.tags})

def available_folders(items: Iterable[VaultItem]) -> List[str]:
	return [ALL_FOLDERS] + sorted({i.folder for i in items if i.folder})

def find_item(items: Iterable[VaultItem], item_id: Optional[str]) -> Optional[VaultItem]:
	if item_id is None: return None
	return next((i for i in items if i.id == item_id), None)
