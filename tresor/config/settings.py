"""Project configuration settings.

Constants for the sealed-file format and its crypto parameters. Environment
overrides are read once at import time.
"""

from pathlib import Path
import os

# File format
MAGIC = b"SECRET"
VERSION_MAJOR = 1
VERSION_MINOR = 0
BODY_FORMAT_VERSION = 1
DEFAULT_GENERATOR = "Tresor"

# Security / crypto
KEY_LENGTH = 32       # 256-bit AEAD key
SALT_LENGTH = 32
NONCE_LENGTH = 12     # ChaCha20-Poly1305 and AES-GCM
AUTH_TAG_LENGTH = 16
DEFAULT_CIPHER = "chacha20-poly1305"

# Argon2id defaults
ARGON2_TIME_COST = 2
ARGON2_MEMORY_COST = 65536  # KiB (64 MB)
ARGON2_PARALLELISM = 4

# Bounds accepted when reading a header
ARGON2_MAX_TIME_COST = 64
ARGON2_MAX_MEMORY_COST = 16 * ARGON2_MEMORY_COST  # KiB (1 GB)
ARGON2_MAX_PARALLELISM = 64

# Limits
MAX_FILE_SIZE = 50_000_000

# Host
DEFAULT_VAULT_PATH = Path(os.environ.get("TRESOR_PATH", "tresor_data/vault.tresor"))
LOG_LEVEL = os.environ.get("TRESOR_LOG_LEVEL", "WARNING")

__all__ = [
	'MAGIC','VERSION_MAJOR','VERSION_MINOR','BODY_FORMAT_VERSION','DEFAULT_GENERATOR',
	'KEY_LENGTH','SALT_LENGTH','NONCE_LENGTH','AUTH_TAG_LENGTH','DEFAULT_CIPHER',
	'ARGON2_TIME_COST','ARGON2_MEMORY_COST','ARGON2_PARALLELISM',
	'ARGON2_MAX_TIME_COST','ARGON2_MAX_MEMORY_COST','ARGON2_MAX_PARALLELISM',
	'MAX_FILE_SIZE','DEFAULT_VAULT_PATH','LOG_LEVEL'
]
