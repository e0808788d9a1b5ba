"""Single-active-vault convenience wrapper."""
from __future__ import annotations
from pathlib import Path
from typing import Optional
from .crypto import Secret
from .errors import NotFound
from .storage import PathLike, open_vault, seal
from .vault import Vault


class TresorSession:
	"""Owns at most one open vault.

	Starting or opening another vault destroys the current one, and so
	does close(). A failed open leaves the current vault in place.
	"""

	def __init__(self):
		self._vault: Optional[Vault] = None

	def __enter__(self) -> 'TresorSession':
		return self

	def __exit__(self, *exc) -> None:
		self.close()

	@property
	def is_open(self) -> bool:
		return self._vault is not None

	@property
	def vault(self) -> Vault:
		if self._vault is None:
			raise NotFound('No vault is open')
		return self._vault

	def new(self, name: str, **kwargs) -> Vault:
		vault = Vault(name, **kwargs)
		self.close()
		self._vault = vault
		return vault

	def open(self, path: PathLike, password: Secret, **kwargs) -> Vault:
		vault = open_vault(path, password, **kwargs)
		self.close()
		self._vault = vault
		return vault

	def seal(self, path: PathLike, password: Secret, **kwargs) -> Path:
		return seal(self.vault, path, password, **kwargs)

	def close(self) -> None:
		if self._vault is not None:
			self._vault.destroy()
			self._vault = None
