import itertools
import pytest
from tresor.lib.crypto import KdfParams
from tresor.lib.vault import Vault


@pytest.fixture
def fast_kdf():
    # Smallest Argon2id cost accepted for one lane
    return KdfParams(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def clock():
    ticks = itertools.count(1_700_000_000_000)
    return lambda: next(ticks)


@pytest.fixture
def vault(clock):
    v = Vault('DB1', clock=clock)
    yield v
    v.destroy()


@pytest.fixture
def populated(vault):
    github = vault.create_entry('github')
    github.add_field('UserName', 'SugarYourCoffee')
    github.add_field('URL', 'https://github.com')
    github.add_field('Type', 'Password')
    mail = vault.create_entry('mail')
    mail.add_field('UserName', 'alice@example.org')
    mail.add_field('Type', 'Password')
    passkey = vault.create_entry('webauthn-github')
    passkey.add_field('Type', 'Passkey')
    passkey.add_field('Notes', 'line one\nline two, with: delimiters\x00')
    return vault
