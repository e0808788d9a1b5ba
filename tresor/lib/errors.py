"""Error taxonomy shared by the entry store, query engine and sealing codec."""
from __future__ import annotations


class TresorError(Exception):
	"""Base class for every error raised by tresor."""


class DuplicateEntry(TresorError):
	"""An entry with this id already exists in the vault."""

	def __init__(self, entry_id: str):
		self.entry_id = entry_id
		super().__init__(f"Entry already exists: {entry_id!r}")


class DuplicateField(TresorError):
	"""The entry already holds a field with this key."""

	def __init__(self, key: str, entry_id: str | None = None):
		self.key = key
		self.entry_id = entry_id
		msg = f"Field already exists: {key!r}"
		if entry_id is not None:
			msg += f" (entry: {entry_id!r})"
		super().__init__(msg)


class NotFound(TresorError, LookupError):
	"""Lookup, update or removal against a missing entry or field."""


class VaultIOError(TresorError):
	"""Reading or writing the sealed file failed at the filesystem level."""


class SealError(TresorError):
	"""The sealed file could not be produced or authenticated.

	Wrong passwords and corrupted files raise the same message.
	"""


class AllocationFailure(TresorError, MemoryError):
	"""Resource exhaustion while sealing or opening."""


class VaultDestroyed(TresorError):
	"""The vault was destroyed and can no longer be used."""
