from typing import List

import pytest
from nacl.signing import SigningKey

from custody.auth import AuthGate
from custody.core.wallet import KeyVault
from custody.services.address import base58_encode

from fakes import FakeAuthPlatform, make_vault


@pytest.fixture
def vault() -> KeyVault:
    return make_vault()


@pytest.fixture
def wallet(vault):
    return vault.generate()


@pytest.fixture
def recipient() -> str:
    return base58_encode(SigningKey.generate().verify_key.encode())


@pytest.fixture
def call_log() -> List[str]:
    return []


@pytest.fixture
def auth_gate(call_log) -> AuthGate:
    return AuthGate(FakeAuthPlatform(call_log=call_log))
