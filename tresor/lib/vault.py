"""Entry store: vaults, their entries and the fields of each entry.

Field values are held as UTF-8 bytearrays so they can be overwritten when
an entry is removed, a value is replaced, or the vault is destroyed.
Entries never outlive their vault: once detached, every field operation
raises NotFound.
"""
from __future__ import annotations
import logging, threading, time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple
from tresor.config.settings import DEFAULT_GENERATOR
from .crypto import wipe
from .errors import DuplicateEntry, DuplicateField, NotFound, VaultDestroyed

log = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
	return int(time.time() * 1000)


def _check_name(kind: str, value) -> None:
	if not isinstance(value, str):
		raise TypeError(f'{kind} must be str, not {type(value).__name__}')
	if not value:
		raise ValueError(f'{kind} must not be empty')


class ReadWriteLock:
	"""Many readers or a single writer.

	Waiting writers hold back new readers. The writer may re-enter both
	read() and write(); a reader may not upgrade to write().
	"""

	def __init__(self):
		self._cond = threading.Condition(threading.Lock())
		self._readers = 0
		self._writer: Optional[int] = None
		self._depth = 0
		self._writers_waiting = 0

	@contextmanager
	def read(self):
		me = threading.get_ident()
		with self._cond:
			nested = self._writer == me
			if not nested:
				while self._writer is not None or self._writers_waiting:
					self._cond.wait()
				self._readers += 1
		try:
			yield
		finally:
			if not nested:
				with self._cond:
					self._readers -= 1
					if not self._readers:
						self._cond.notify_all()

	@contextmanager
	def write(self):
		me = threading.get_ident()
		with self._cond:
			if self._writer == me:
				self._depth += 1
			else:
				self._writers_waiting += 1
				try:
					while self._writer is not None or self._readers:
						self._cond.wait()
				finally:
					self._writers_waiting -= 1
				self._writer = me
				self._depth = 1
		try:
			yield
		finally:
			with self._cond:
				self._depth -= 1
				if not self._depth:
					self._writer = None
					self._cond.notify_all()


class Entry:
	"""A named record of fields, owned by exactly one Vault."""

	def __init__(self, vault: 'Vault', entry_id: str, created: int):
		self.id = entry_id
		self.created = created
		self.modified = created
		self._fields: Dict[str, bytearray] = {}
		self._vault: Optional[Vault] = vault

	def __repr__(self) -> str:
		state = '' if self.alive else ', detached'
		return f'<Entry {self.id!r} fields={len(self._fields)}{state}>'

	@property
	def alive(self) -> bool:
		return self._vault is not None

	def _owner(self) -> 'Vault':
		vault = self._vault
		if vault is None:
			raise NotFound(f'Entry {self.id!r} is no longer part of a vault')
		return vault

	def _check_alive(self) -> None:
		if self._vault is None:
			raise NotFound(f'Entry {self.id!r} is no longer part of a vault')

	def _edit(self, vault: 'Vault') -> None:
		now = vault._clock()
		self.modified = now
		vault.modified = now

	def add_field(self, key: str, value: str) -> None:
		"""Add a new field. Raises DuplicateField if `key` already exists."""
		if not isinstance(key, str): raise TypeError('key must be str')
		if not isinstance(value, str): raise TypeError('value must be str')
		vault = self._owner()
		with vault._lock.write():
			self._check_alive()
			if key in self._fields:
				raise DuplicateField(key, self.id)
			self._fields[key] = bytearray(value.encode('utf-8'))
			self._edit(vault)

	def get_field(self, key: str) -> str:
		vault = self._owner()
		with vault._lock.read():
			self._check_alive()
			try:
				return self._fields[key].decode('utf-8')
			except KeyError:
				raise NotFound(f'Field {key!r} not found in entry {self.id!r}') from None

	def update_field(self, key: str, value: str) -> None:
		"""Replace the value of an existing field; never creates one."""
		if not isinstance(value, str): raise TypeError('value must be str')
		vault = self._owner()
		with vault._lock.write():
			self._check_alive()
			old = self._fields.get(key)
			if old is None:
				raise NotFound(f'Field {key!r} not found in entry {self.id!r}')
			self._fields[key] = bytearray(value.encode('utf-8'))
			wipe(old)
			self._edit(vault)

	def remove_field(self, key: str) -> None:
		vault = self._owner()
		with vault._lock.write():
			self._check_alive()
			old = self._fields.pop(key, None)
			if old is None:
				raise NotFound(f'Field {key!r} not found in entry {self.id!r}')
			wipe(old)
			self._edit(vault)

	def keys(self) -> List[str]:
		vault = self._owner()
		with vault._lock.read():
			self._check_alive()
			return list(self._fields)

	def items(self) -> List[Tuple[str, str]]:
		vault = self._owner()
		with vault._lock.read():
			self._check_alive()
			return [(k, v.decode('utf-8')) for k, v in self._fields.items()]

	def __contains__(self, key) -> bool:
		vault = self._vault
		if vault is None: return False
		with vault._lock.read():
			return key in self._fields

	def __len__(self) -> int:
		return len(self._fields)

	def _matches(self, needle: str, wanted: Mapping[str, str]) -> bool:
		vault = self._vault
		if vault is None: return False
		with vault._lock.read():
			if self._vault is None or needle not in self.id:
				return False
			for key, value in wanted.items():
				current = self._fields.get(key)
				if current is None or current != value.encode('utf-8'):
					return False
			return True

	def _detach(self) -> None:
		"""Wipe every value and drop the link to the vault. Caller holds the write lock."""
		for value in self._fields.values():
			wipe(value)
		self._fields.clear()
		self._vault = None


class Vault:
	"""Named, ordered collection of entries; the unit of sealing."""

	def __init__(self, name: str, *, generator: str = DEFAULT_GENERATOR, clock: Clock = now_ms):
		if not isinstance(name, str): raise TypeError('name must be str')
		self.name = name
		self.generator = generator
		self._clock = clock
		self.created = self.modified = clock()
		self._entries: Dict[str, Entry] = {}
		self._lock = ReadWriteLock()
		self._destroyed = False

	def __repr__(self) -> str:
		state = ' destroyed' if self._destroyed else ''
		return f'<Vault {self.name!r} entries={len(self._entries)}{state}>'

	def __enter__(self) -> 'Vault':
		return self

	def __exit__(self, *exc) -> None:
		self.destroy()

	@property
	def destroyed(self) -> bool:
		return self._destroyed

	def _check(self) -> None:
		if self._destroyed:
			raise VaultDestroyed(f'Vault {self.name!r} was destroyed')

	@contextmanager
	def exclusive(self):
		"""Hold the vault's write lock, e.g. for the duration of a seal."""
		with self._lock.write():
			self._check()
			yield self

	def create_entry(self, entry_id: str) -> Entry:
		_check_name('entry id', entry_id)
		with self._lock.write():
			self._check()
			if entry_id in self._entries:
				raise DuplicateEntry(entry_id)
			now = self._clock()
			entry = Entry(self, entry_id, now)
			self._entries[entry_id] = entry
			self.modified = now
			return entry

	def get_entry(self, entry_id: str) -> Entry:
		with self._lock.read():
			self._check()
			try:
				return self._entries[entry_id]
			except KeyError:
				raise NotFound(f'Entry not found: {entry_id!r}') from None

	def remove_entry(self, entry_id: str) -> None:
		"""Delete the entry and wipe its fields. Outstanding references become detached."""
		with self._lock.write():
			self._check()
			entry = self._entries.pop(entry_id, None)
			if entry is None:
				raise NotFound(f'Entry not found: {entry_id!r}')
			entry._detach()
			self.modified = self._clock()

	def ids(self) -> List[str]:
		with self._lock.read():
			self._check()
			return list(self._entries)

	def entries(self) -> List[Entry]:
		"""Snapshot of the entries in insertion order."""
		with self._lock.read():
			self._check()
			return list(self._entries.values())

	def query(self, filter: str = '', *, fields: Mapping[str, str] | None = None) -> Iterator[Entry]:
		from .query import query_entries
		return query_entries(self, filter, fields=fields)

	def __len__(self) -> int:
		return len(self._entries)

	def __contains__(self, entry_id) -> bool:
		with self._lock.read():
			return entry_id in self._entries

	def __iter__(self) -> Iterator[Entry]:
		return iter(self.entries())

	def destroy(self) -> None:
		"""Release every entry and wipe all field values. Idempotent."""
		with self._lock.write():
			if self._destroyed:
				return
			for entry in self._entries.values():
				entry._detach()
			self._entries.clear()
			self._destroyed = True
		log.debug('Vault %r destroyed', self.name)

	def _restore_entry(self, entry_id: str, created: int, modified: int, fields: List[Tuple[str, bytearray]]) -> Entry:
		"""Insert a decoded entry, taking ownership of the value buffers."""
		_check_name('entry id', entry_id)
		with self._lock.write():
			self._check()
			if entry_id in self._entries:
				raise DuplicateEntry(entry_id)
			entry = Entry(self, entry_id, created)
			entry.modified = modified
			for key, value in fields:
				if not isinstance(key, str): raise TypeError('key must be str')
				if key in entry._fields:
					raise DuplicateField(key, entry_id)
				entry._fields[key] = value
			self._entries[entry_id] = entry
			return entry


def new_vault(name: str, **kwargs) -> Vault:
	return Vault(name, **kwargs)


def destroy(vault: Vault) -> None:
	vault.destroy()
