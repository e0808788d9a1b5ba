import os
import stat
import threading
import time
import pytest
from pathlib import Path
from tresor.lib import storage
from tresor.lib.crypto import VaultCrypto
from tresor.lib.errors import SealError, VaultIOError
from tresor.lib.storage import open_vault, seal
from tresor.lib.vault import Vault


def test_seal_and_open(tmp_path: Path, populated, fast_kdf):
    path = seal(populated, tmp_path / 'vault.tresor', 'master', kdf=fast_kdf)
    assert path.exists()
    v = open_vault(path, 'master')
    assert v.name == 'DB1'
    assert v.ids() == ['github', 'mail', 'webauthn-github']
    assert v.get_entry('github').get_field('UserName') == 'SugarYourCoffee'


def test_seal_accepts_str_path(tmp_path: Path, vault, fast_kdf):
    seal(vault, str(tmp_path / 'v.tresor'), 'pw', kdf=fast_kdf)
    assert open_vault(str(tmp_path / 'v.tresor'), 'pw').name == 'DB1'


def test_sealed_file_is_private(tmp_path: Path, vault, fast_kdf):
    path = seal(vault, tmp_path / 'v.tresor', 'pw', kdf=fast_kdf)
    if os.name == 'posix':
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_home_expansion(tmp_path: Path, monkeypatch, vault, fast_kdf):
    monkeypatch.setenv('HOME', str(tmp_path))
    path = seal(vault, '~/v.tresor', 'pw', kdf=fast_kdf)
    assert path == tmp_path / 'v.tresor'
    assert open_vault('~/v.tresor', 'pw').name == 'DB1'


def test_open_wrong_password(tmp_path: Path, vault, fast_kdf):
    seal(vault, tmp_path / 'v.tresor', 'pw1', kdf=fast_kdf)
    with pytest.raises(SealError):
        open_vault(tmp_path / 'v.tresor', 'pw2')


def test_open_missing_file(tmp_path: Path):
    with pytest.raises(VaultIOError):
        open_vault(tmp_path / 'missing.tresor', 'pw')


def test_open_directory(tmp_path: Path):
    with pytest.raises(VaultIOError):
        open_vault(tmp_path, 'pw')


def test_open_too_large(tmp_path: Path, monkeypatch):
    path = tmp_path / 'big.tresor'
    path.write_bytes(b'SECRET' + bytes(100))
    monkeypatch.setattr(storage, 'MAX_FILE_SIZE', 10)
    with pytest.raises(SealError):
        open_vault(path, 'pw')


def test_open_not_a_vault(tmp_path: Path):
    path = tmp_path / 'notes.txt'
    path.write_text('hello')
    with pytest.raises(SealError):
        open_vault(path, 'pw')


def test_seal_into_missing_directory(tmp_path: Path, vault, fast_kdf):
    with pytest.raises(VaultIOError):
        seal(vault, tmp_path / 'nope' / 'v.tresor', 'pw', kdf=fast_kdf)


def test_seal_empty_path(vault, fast_kdf):
    with pytest.raises(VaultIOError):
        seal(vault, '', 'pw', kdf=fast_kdf)


def test_reseal_uses_fresh_salt(tmp_path: Path, vault, fast_kdf):
    path = tmp_path / 'v.tresor'
    seal(vault, path, 'pw', kdf=fast_kdf)
    first = path.read_bytes()
    seal(vault, path, 'pw', kdf=fast_kdf)
    second = path.read_bytes()
    assert first[:10] == second[:10]
    assert first != second


def _leftovers(tmp_path: Path):
    return [p.name for p in tmp_path.iterdir() if p.name.endswith('.tmp')]


@pytest.mark.parametrize('target', ['replace', 'fsync'])
def test_interrupted_seal_keeps_previous_file(tmp_path: Path, monkeypatch, populated, fast_kdf, target):
    path = tmp_path / 'v.tresor'
    seal(populated, path, 'original', kdf=fast_kdf)
    before = path.read_bytes()

    def crash(*args, **kwargs):
        raise OSError(28, 'No space left on device')

    populated.create_entry('new-entry')
    monkeypatch.setattr(storage.os, target, crash)
    with pytest.raises(VaultIOError):
        seal(populated, path, 'changed', kdf=fast_kdf)
    monkeypatch.undo()

    assert path.read_bytes() == before
    assert _leftovers(tmp_path) == []
    reopened = open_vault(path, 'original')
    assert 'new-entry' not in reopened
    assert reopened.ids() == ['github', 'mail', 'webauthn-github']


def test_failed_seal_does_not_touch_file(tmp_path: Path, populated, fast_kdf):
    path = tmp_path / 'v.tresor'
    seal(populated, path, 'pw', kdf=fast_kdf)
    before = path.read_bytes()
    with pytest.raises(SealError):
        seal(populated, path, '', kdf=fast_kdf)
    assert path.read_bytes() == before


def test_vault_usable_after_seal(tmp_path: Path, vault, fast_kdf):
    seal(vault, tmp_path / 'v.tresor', 'pw', kdf=fast_kdf)
    vault.create_entry('later').add_field('k', 'v')
    seal(vault, tmp_path / 'v.tresor', 'pw', kdf=fast_kdf)
    assert open_vault(tmp_path / 'v.tresor', 'pw').get_entry('later').get_field('k') == 'v'


def test_seal_and_open_default_kdf(tmp_path: Path):
    v = Vault('defaults')
    v.create_entry('a').add_field('k', 'v')
    seal(v, tmp_path / 'v.tresor', 'pw')
    assert open_vault(tmp_path / 'v.tresor', 'pw').get_entry('a').get_field('k') == 'v'


def test_seal_blocks_writers_until_written(tmp_path: Path, monkeypatch, populated, fast_kdf):
    path = tmp_path / 'v.tresor'
    events = []
    deriving = threading.Event()
    derive = VaultCrypto.derive_key

    def slow_derive(self, *args, **kwargs):
        deriving.set()
        time.sleep(0.3)
        key = derive(self, *args, **kwargs)
        events.append('derived')
        return key

    monkeypatch.setattr(VaultCrypto, 'derive_key', slow_derive)
    sealer = threading.Thread(target=seal, args=(populated, path, 'pw'), kwargs={'kdf': fast_kdf})
    sealer.start()
    assert deriving.wait(5)
    started = time.monotonic()
    populated.create_entry('late')
    events.append('created')
    waited = time.monotonic() - started
    sealer.join(5)
    monkeypatch.undo()

    assert events == ['derived', 'created']
    assert waited > 0.2
    reopened = open_vault(path, 'pw')
    assert 'late' not in reopened
    assert reopened.ids() == ['github', 'mail', 'webauthn-github']
