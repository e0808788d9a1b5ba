import pytest
from pathlib import Path
from tresor.lib.errors import NotFound, SealError
from tresor.lib.session import TresorSession


def test_session_lifecycle(tmp_path: Path, fast_kdf):
    path = tmp_path / 'v.tresor'
    with TresorSession() as s:
        assert not s.is_open
        with pytest.raises(NotFound):
            s.vault
        v = s.new('DB1')
        v.create_entry('a').add_field('k', 'v')
        s.seal(path, 'pw', kdf=fast_kdf)
        reopened = s.open(path, 'pw')
        assert v.destroyed
        assert s.vault is reopened
        assert reopened.get_entry('a').get_field('k') == 'v'
    assert reopened.destroyed
    assert not s.is_open


def test_failed_open_keeps_current_vault(tmp_path: Path, fast_kdf):
    path = tmp_path / 'v.tresor'
    s = TresorSession()
    current = s.new('DB1')
    s.seal(path, 'pw', kdf=fast_kdf)
    with pytest.raises(SealError):
        s.open(path, 'wrong')
    assert s.vault is current
    assert not current.destroyed
    s.close()
    assert current.destroyed


def test_new_replaces_and_destroys(fast_kdf):
    s = TresorSession()
    first = s.new('one')
    second = s.new('two')
    assert first.destroyed
    assert s.vault is second
    s.close()
    s.close()
