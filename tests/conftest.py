"""
Pytest configuration and shared fixtures for the vault SDK tests.

Everything runs against the in-process mock deployment:
- MockClock for block time
- MockCoprocessor (initialized) for encryption / user decryption
- MockVault with the FHEVault revert rules
- Deterministic eth-account signers for alice and bob
"""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from vault_sdk import AccountSigner, VaultController
from vault_sdk.mock import MockClock, MockCoprocessor, MockVault

ALICE_KEY = "0x" + "a1" * 32
BOB_KEY = "0x" + "b2" * 32

ETH = 10 ** 18


@pytest.fixture
def clock():
    """Block time starting at a fixed timestamp."""
    return MockClock(1_700_000_000)


@pytest.fixture
def coprocessor(clock):
    """Initialized in-memory co-processor."""
    cop = MockCoprocessor(clock=clock)
    asyncio.run(cop.initialize())
    return cop


@pytest.fixture
def alice():
    return AccountSigner.from_key(ALICE_KEY)


@pytest.fixture
def bob():
    return AccountSigner.from_key(BOB_KEY)


@pytest.fixture
def vault(coprocessor, alice, clock):
    """Mock vault with alice as sender."""
    return MockVault(coprocessor, account_address=alice.address, clock=clock)


@pytest.fixture
def controller(vault, coprocessor, alice, clock):
    """Controller for alice on the mock deployment."""
    return VaultController(vault, coprocessor, alice, clock=clock)
