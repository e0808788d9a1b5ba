"""Binary codec for sealed vaults.

A sealed vault is laid out as follows (integers little-endian):

1. The magic string "SECRET"
2. The length of the header (u32)
3. The header
    * major and minor format version (u16 each)
    * cipher identifier, nonce length and nonce
    * compression identifier (only "none" is supported)
    * KDF identifier, Argon2id time/memory/parallelism and the salt
4. The 16 byte AEAD tag
5. The encrypted body

Everything before the tag is passed to the cipher as associated data, so
the tag also covers the header. The body stores every string as a u32
length followed by UTF-8 bytes; values can hold any character.
"""
from __future__ import annotations
import logging, struct
from dataclasses import dataclass
from typing import List, Optional, Tuple
from tresor.config.settings import (
	MAGIC, VERSION_MAJOR, VERSION_MINOR, BODY_FORMAT_VERSION,
	NONCE_LENGTH, AUTH_TAG_LENGTH, DEFAULT_CIPHER,
)
from .crypto import (
	VaultCrypto, CryptoError, KdfParams, Secret, wipe,
	CIPHER_IDS, CIPHER_NAMES, KDF_ARGON2ID,
)
from .errors import AllocationFailure, DuplicateEntry, DuplicateField, SealError
from .vault import Clock, Vault, now_ms

log = logging.getLogger(__name__)

COMPRESSION_NONE = 0
MIN_SALT_LENGTH = 16
_PREFIX = struct.Struct('<I')
_OPEN_FAILED = 'Unable to open vault: wrong password or corrupted file'


class _Malformed(ValueError):
	pass


class _Reader:
	"""Cursor over a buffer; every read is bounds-checked."""

	def __init__(self, buf):
		self._view = memoryview(buf)
		self._pos = 0

	def take(self, n: int) -> memoryview:
		end = self._pos + n
		if end > len(self._view):
			raise _Malformed('truncated data')
		chunk = self._view[self._pos:end]
		self._pos = end
		return chunk

	def unpack(self, fmt: str) -> tuple:
		return struct.unpack(fmt, self.take(struct.calcsize(fmt)))

	def text(self) -> str:
		(n,) = self.unpack('<I')
		return bytes(self.take(n)).decode('utf-8')

	def secret(self) -> bytearray:
		(n,) = self.unpack('<I')
		value = bytearray(self.take(n))
		try:
			str(value, 'utf-8')
		except UnicodeDecodeError:
			wipe(value)
			raise
		return value

	def finish(self) -> None:
		if self._pos != len(self._view):
			raise _Malformed('trailing bytes')
		self._view.release()


@dataclass(frozen=True)
class Header:
	cipher: str
	nonce: bytes
	kdf: KdfParams
	salt: bytes
	version_major: int = VERSION_MAJOR
	version_minor: int = VERSION_MINOR
	compression: int = COMPRESSION_NONE

	def pack(self) -> bytes:
		out = bytearray()
		out += struct.pack('<HHBB', self.version_major, self.version_minor, CIPHER_IDS[self.cipher], len(self.nonce))
		out += self.nonce
		out += struct.pack('<BBIIBB', self.compression, KDF_ARGON2ID,
			self.kdf.time_cost, self.kdf.memory_cost, self.kdf.parallelism, len(self.salt))
		out += self.salt
		return bytes(out)

	@classmethod
	def unpack(cls, raw: bytes) -> 'Header':
		"""Parse and validate a header.

		Raises SealError for anything this version cannot read, including
		KDF parameters outside the configured bounds.
		"""
		r = _Reader(raw)
		try:
			major, minor, cipher_id, nonce_len = r.unpack('<HHBB')
			if major != VERSION_MAJOR or minor > VERSION_MINOR:
				raise SealError(f'Unsupported format version {major}.{minor}')
			cipher = CIPHER_NAMES.get(cipher_id)
			if cipher is None:
				raise SealError(f'Unsupported cipher id {cipher_id}')
			if nonce_len != NONCE_LENGTH:
				raise SealError('Unexpected nonce length')
			nonce = bytes(r.take(nonce_len))
			compression, kdf_id, t, m, p, salt_len = r.unpack('<BBIIBB')
			if compression != COMPRESSION_NONE:
				raise SealError(f'Unsupported compression id {compression}')
			if kdf_id != KDF_ARGON2ID:
				raise SealError(f'Unsupported key derivation id {kdf_id}')
			if salt_len < MIN_SALT_LENGTH:
				raise SealError('Salt too short')
			salt = bytes(r.take(salt_len))
			r.finish()
		except _Malformed as e:
			raise SealError(f'Malformed header: {e}') from None
		kdf = KdfParams(time_cost=t, memory_cost=m, parallelism=p)
		try:
			kdf.validate()
		except CryptoError as e:
			raise SealError(str(e)) from None
		return cls(cipher=cipher, nonce=nonce, kdf=kdf, salt=salt,
			version_major=major, version_minor=minor, compression=compression)


def _put_text(out: bytearray, value) -> None:
	data = value.encode('utf-8') if isinstance(value, str) else value
	out += _PREFIX.pack(len(data))
	out += data


def encode_body(vault: Vault) -> bytearray:
	"""Serialise `vault` deterministically.

	The caller must hold the vault exclusively. The result holds every
	field value in clear and should be wiped after use.
	"""
	out = bytearray()
	out += struct.pack('<H', BODY_FORMAT_VERSION)
	_put_text(out, vault.generator)
	_put_text(out, vault.name)
	out += struct.pack('<QQI', vault.created, vault.modified, len(vault._entries))
	for entry in vault._entries.values():
		_put_text(out, entry.id)
		out += struct.pack('<QQI', entry.created, entry.modified, len(entry._fields))
		for key, value in entry._fields.items():
			_put_text(out, key)
			_put_text(out, value)
	return out


def decode_body(plain: bytearray, clock: Clock = now_ms) -> Vault:
	"""Build a fresh Vault from a decrypted body.

	Raises ValueError (or a duplicate error) on malformed input; nothing
	partially built is returned.
	"""
	r = _Reader(plain)
	(version,) = r.unpack('<H')
	if version != BODY_FORMAT_VERSION:
		raise _Malformed(f'unknown body version {version}')
	generator = r.text()
	name = r.text()
	created, modified, count = r.unpack('<QQI')
	vault = Vault(name, generator=generator, clock=clock)
	pending: List[Tuple[str, bytearray]] = []
	try:
		for _ in range(count):
			entry_id = r.text()
			e_created, e_modified, n_fields = r.unpack('<QQI')
			pending = []
			for _ in range(n_fields):
				key = r.text()
				pending.append((key, r.secret()))
			vault._restore_entry(entry_id, e_created, e_modified, pending)
			pending = []
		r.finish()
	except BaseException:
		for _, value in pending:
			wipe(value)
		vault.destroy()
		raise
	vault.created, vault.modified = created, modified
	return vault


def _split(raw: bytes) -> Tuple[Header, bytes, bytes, bytes]:
	"""Return (header, authenticated prefix, tag, ciphertext)."""
	head = len(MAGIC) + _PREFIX.size
	if len(raw) < head or raw[:len(MAGIC)] != MAGIC:
		raise SealError('Unrecognised file format')
	(header_len,) = _PREFIX.unpack_from(raw, len(MAGIC))
	end = head + header_len
	if end + AUTH_TAG_LENGTH > len(raw):
		raise SealError('Truncated sealed file')
	header = Header.unpack(raw[head:end])
	return header, bytes(raw[:end]), bytes(raw[end:end + AUTH_TAG_LENGTH]), bytes(raw[end + AUTH_TAG_LENGTH:])


def seal_bytes(vault: Vault, password: Secret, *, kdf: Optional[KdfParams] = None,
		cipher: str = DEFAULT_CIPHER, crypto: Optional[VaultCrypto] = None) -> bytes:
	"""Serialise and encrypt `vault`; fresh salt and nonce on every call."""
	if cipher not in CIPHER_IDS:
		raise SealError(f'Unsupported cipher: {cipher}')
	crypto = crypto or VaultCrypto()
	kdf = kdf or KdfParams()
	key = body = None
	try:
		with vault.exclusive():
			header = Header(cipher=cipher, nonce=crypto.generate_nonce(), kdf=kdf, salt=crypto.generate_salt())
			packed = header.pack()
			prefix = MAGIC + _PREFIX.pack(len(packed)) + packed
			key = crypto.derive_key(password, header.salt, kdf)
			body = encode_body(vault)
			ciphertext, tag = crypto.encrypt(body, key, header.nonce, prefix, cipher)
	except CryptoError as e:
		raise SealError(f'Unable to seal vault: {e}') from e
	except struct.error as e:
		raise SealError(f'Unable to serialise vault: {e}') from e
	except MemoryError as e:
		raise AllocationFailure('Out of memory while sealing') from e
	finally:
		wipe(key)
		wipe(body)
	return prefix + tag + ciphertext


def open_bytes(raw: bytes, password: Secret, *, clock: Clock = now_ms,
		crypto: Optional[VaultCrypto] = None) -> Vault:
	"""Authenticate, decrypt and deserialise a sealed vault."""
	crypto = crypto or VaultCrypto()
	header, prefix, tag, ciphertext = _split(raw)
	key = plain = None
	try:
		key = crypto.derive_key(password, header.salt, header.kdf)
		plain = crypto.decrypt(ciphertext, tag, key, header.nonce, prefix, header.cipher)
		wipe(key)
		return decode_body(plain, clock)
	except CryptoError:
		log.warning('Authentication of sealed vault failed')
		raise SealError(_OPEN_FAILED) from None
	except (ValueError, DuplicateEntry, DuplicateField) as e:
		log.warning('Sealed vault body is malformed (%s)', type(e).__name__)
		raise SealError('Sealed vault is malformed') from None
	except MemoryError as e:
		raise AllocationFailure('Out of memory while opening') from e
	finally:
		wipe(key)
		wipe(plain)
