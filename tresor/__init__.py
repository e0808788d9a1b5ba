"""tresor: a password-sealed vault of named entries and their fields."""
from tresor.lib.codec import open_bytes, seal_bytes
from tresor.lib.crypto import AES_256_GCM, CHACHA20_POLY1305, KdfParams
from tresor.lib.errors import (
	TresorError, DuplicateEntry, DuplicateField, NotFound,
	VaultIOError, SealError, AllocationFailure, VaultDestroyed,
)
from tresor.lib.query import parse_field_filter, query_entries
from tresor.lib.session import TresorSession
from tresor.lib.storage import open_vault, seal
from tresor.lib.vault import Entry, Vault, destroy, new_vault

__version__ = '0.1.1'

__all__ = [
	'Vault', 'Entry', 'new_vault', 'destroy', 'query_entries', 'parse_field_filter',
	'seal', 'open_vault', 'seal_bytes', 'open_bytes', 'TresorSession',
	'KdfParams', 'CHACHA20_POLY1305', 'AES_256_GCM',
	'TresorError', 'DuplicateEntry', 'DuplicateField', 'NotFound',
	'VaultIOError', 'SealError', 'AllocationFailure', 'VaultDestroyed',
]
