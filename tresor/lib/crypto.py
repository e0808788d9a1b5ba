"""Cryptographic primitives (Argon2id key derivation, AEAD ciphers, wiping)."""
from __future__ import annotations
import secrets
from dataclasses import dataclass
from typing import Tuple, Union
from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from tresor.config.settings import (
	KEY_LENGTH, SALT_LENGTH, NONCE_LENGTH, AUTH_TAG_LENGTH,
	ARGON2_TIME_COST, ARGON2_MEMORY_COST, ARGON2_PARALLELISM,
	ARGON2_MAX_TIME_COST, ARGON2_MAX_MEMORY_COST, ARGON2_MAX_PARALLELISM,
)

CHACHA20_POLY1305 = 'chacha20-poly1305'
AES_256_GCM = 'aes-256-gcm'

# Identifiers written to the sealed-file header
CIPHER_IDS = {CHACHA20_POLY1305: 1, AES_256_GCM: 2}
CIPHER_NAMES = {v: k for k, v in CIPHER_IDS.items()}
KDF_ARGON2ID = 1

Secret = Union[str, bytes, bytearray]


class CryptoError(Exception):
	pass


def wipe(buf: bytearray | None) -> None:
	"""Overwrite a mutable buffer with zeros in place."""
	if buf:
		buf[:] = bytes(len(buf))


@dataclass(frozen=True)
class KdfParams:
	"""Argon2id cost parameters, stored in clear in every sealed header."""
	time_cost: int = ARGON2_TIME_COST
	memory_cost: int = ARGON2_MEMORY_COST  # KiB
	parallelism: int = ARGON2_PARALLELISM

	def validate(self) -> None:
		if not 1 <= self.time_cost <= ARGON2_MAX_TIME_COST:
			raise CryptoError(f'Argon2 time cost out of range: {self.time_cost}')
		if not 1 <= self.parallelism <= ARGON2_MAX_PARALLELISM:
			raise CryptoError(f'Argon2 parallelism out of range: {self.parallelism}')
		if not 8 * self.parallelism <= self.memory_cost <= ARGON2_MAX_MEMORY_COST:
			raise CryptoError(f'Argon2 memory cost out of range: {self.memory_cost}')


class VaultCrypto:
	def __init__(self):
		self._backend = default_backend()

	def generate_salt(self) -> bytes:
		return secrets.token_bytes(SALT_LENGTH)

	def generate_nonce(self) -> bytes:
		return secrets.token_bytes(NONCE_LENGTH)

	def derive_key(self, password: Secret, salt: bytes, params: KdfParams | None = None) -> bytearray:
		"""Derive the AEAD key with Argon2id.

		The result is a bytearray so the caller can wipe it once the
		operation is over.
		"""
		if not password:
			raise CryptoError('Password empty')
		params = params or KdfParams()
		params.validate()
		secret = password.encode('utf-8') if isinstance(password, str) else bytes(password)
		try:
			raw = hash_secret_raw(
				secret=secret,
				salt=salt,
				time_cost=params.time_cost,
				memory_cost=params.memory_cost,
				parallelism=params.parallelism,
				hash_len=KEY_LENGTH,
				type=Type.ID,
			)
		except HashingError as e:
			raise CryptoError(f'Key derivation failed: {e}') from e
		return bytearray(raw)

	def encrypt(self, data: bytes | bytearray, key: bytearray, nonce: bytes, aad: bytes, cipher: str = CHACHA20_POLY1305) -> Tuple[bytes, bytes]:
		"""Encrypt `data` and authenticate it together with `aad`.

		Returns (ciphertext, tag).
		"""
		if len(key) != KEY_LENGTH: raise CryptoError('Bad key length')
		if len(nonce) != NONCE_LENGTH: raise CryptoError('Bad nonce length')
		if cipher == AES_256_GCM:
			enc = Cipher(algorithms.AES(key), modes.GCM(nonce), backend=self._backend).encryptor()
			enc.authenticate_additional_data(aad)
			ct = enc.update(data) + enc.finalize()
			return ct, enc.tag
		if cipher == CHACHA20_POLY1305:
			sealed = ChaCha20Poly1305(key).encrypt(nonce, data, aad)
			return sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
		raise CryptoError(f'Unsupported cipher: {cipher}')

	def decrypt(self, ciphertext: bytes, tag: bytes, key: bytearray, nonce: bytes, aad: bytes, cipher: str = CHACHA20_POLY1305) -> bytearray:
		"""Verify the tag and return the plaintext.

		Raises CryptoError before any plaintext is returned if the tag does
		not match.
		"""
		if len(key) != KEY_LENGTH: raise CryptoError('Bad key length')
		if len(tag) != AUTH_TAG_LENGTH: raise CryptoError('Bad tag length')
		if cipher == AES_256_GCM:
			dec = Cipher(algorithms.AES(key), modes.GCM(nonce, tag), backend=self._backend).decryptor()
			dec.authenticate_additional_data(aad)
			# update_into needs block_size - 1 bytes of slack
			out = bytearray(len(ciphertext) + 15)
			n = dec.update_into(ciphertext, out)
			try:
				dec.finalize()
			except InvalidTag:
				wipe(out)
				raise CryptoError('Decrypt failed') from None
			del out[n:]
			return out
		if cipher == CHACHA20_POLY1305:
			try:
				plain = ChaCha20Poly1305(key).decrypt(nonce, bytes(ciphertext) + bytes(tag), aad)
			except InvalidTag:
				raise CryptoError('Decrypt failed') from None
			return bytearray(plain)
		raise CryptoError(f'Unsupported cipher: {cipher}')
