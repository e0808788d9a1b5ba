"""Sealed-file storage: seal a vault to disk atomically and open it again."""
from __future__ import annotations
import contextlib, logging, os, tempfile
from pathlib import Path
from typing import Optional, Union
from tresor.config.settings import DEFAULT_CIPHER, MAX_FILE_SIZE
from .codec import open_bytes, seal_bytes
from .crypto import KdfParams, Secret
from .errors import SealError, VaultIOError
from .vault import Clock, Vault, now_ms

log = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


def _resolve(path: PathLike) -> Path:
	if not str(path):
		raise VaultIOError('Empty vault path')
	return Path(path).expanduser()


def _atomic_write(target: Path, data: bytes) -> None:
	"""Write `data` to a temp file beside `target`, then move it into place.

	If anything fails the temp file is removed and `target` keeps its
	previous content.
	"""
	tmp: Optional[Path] = None
	try:
		fd, name = tempfile.mkstemp(prefix=f'.{target.name}.', suffix='.tmp', dir=target.parent)
		tmp = Path(name)
		with os.fdopen(fd, 'wb') as f:
			f.write(data)
			f.flush()
			os.fsync(f.fileno())
		os.replace(tmp, target)
		tmp = None
	except OSError as e:
		raise VaultIOError(f'Unable to write {target}: {e}') from e
	finally:
		if tmp is not None:
			with contextlib.suppress(OSError):
				tmp.unlink()


def seal(vault: Vault, path: PathLike, password: Secret, *, kdf: Optional[KdfParams] = None,
		cipher: str = DEFAULT_CIPHER) -> Path:
	"""Encrypt `vault` with `password` and write it to `path`.

	The vault stays usable afterwards; sealing is a snapshot.
	"""
	target = _resolve(path)
	with vault.exclusive():
		raw = seal_bytes(vault, password, kdf=kdf, cipher=cipher)
		_atomic_write(target, raw)
	log.info('Vault sealed -> %s', target)
	return target


def open_vault(path: PathLike, password: Secret, *, clock: Clock = now_ms) -> Vault:
	"""Read, authenticate and decode the sealed vault at `path`."""
	target = _resolve(path)
	try:
		if target.stat().st_size > MAX_FILE_SIZE:
			raise SealError('Sealed file too large')
		raw = target.read_bytes()
	except OSError as e:
		raise VaultIOError(f'Unable to read {target}: {e.strerror or e}') from e
	vault = open_bytes(raw, password, clock=clock)
	log.info('Vault opened <- %s', target)
	return vault
