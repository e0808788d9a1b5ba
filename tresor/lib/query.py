"""Query engine: lazy, read-only lookup of entries in a vault."""
from __future__ import annotations
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping

if TYPE_CHECKING:
	from .vault import Entry, Vault


def parse_field_filter(text: str) -> Dict[str, str]:
	"""Parse `KEY:VALUE{,KEY:VALUE}` into a mapping.

	Pairs without a colon or with an empty key are skipped. The value is
	everything after the first colon.
	"""
	wanted: Dict[str, str] = {}
	for pair in text.split(','):
		key, sep, value = pair.partition(':')
		if not sep or not key:
			continue
		wanted[key] = value
	return wanted


def query_entries(vault: 'Vault', filter: str = '', *, fields: Mapping[str, str] | None = None) -> Iterator['Entry']:
	"""Return the entries whose id contains `filter`, in insertion order.

	`filter` is a case-sensitive substring match; an empty filter matches
	every entry. When `fields` is given, an entry must also hold every
	key with exactly the given value.

	The candidate list is taken when the query is made; matching happens
	lazily while iterating. Entries removed in the meantime are skipped.
	"""
	if not isinstance(filter, str):
		raise TypeError('filter must be str')
	wanted = dict(fields or {})
	for key, value in wanted.items():
		if not isinstance(key, str) or not isinstance(value, str):
			raise TypeError('field filters must map str to str')
	return _matching(vault.entries(), filter, wanted)


def _matching(candidates: List['Entry'], needle: str, wanted: Dict[str, str]) -> Iterator['Entry']:
	for entry in candidates:
		if entry._matches(needle, wanted):
			yield entry
