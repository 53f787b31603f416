"""
FHE Vault SDK - Local Mock Deployment

In-process stand-ins for the FHEVault contract and the FHE co-processor,
for local development and tests without a chain.

  - MockClock: settable block time
  - MockCoprocessor: ciphertext table with per-handle ACL; verifies input
    proofs and EIP-712 user-decrypt signatures like the real service
  - MockVault: same async surface as VaultContract, same revert rules as
    FHEVault

Usage:
    clock = MockClock()
    coprocessor = MockCoprocessor(clock=clock)
    vault = MockVault(coprocessor, account_address=signer.address, clock=clock)
    controller = VaultController(vault, coprocessor, signer, clock=clock)
"""

import hashlib
import itertools
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from web3 import Web3

from .contract import ContractCallError
from .coprocessor import Coprocessor, CoprocessorError, seal_value
from .signer import recover_typed_data_signer
from .vault_types import (
    MAX_UINT64,
    SECONDS_PER_DAY,
    ZERO_HANDLE,
    LockInfo,
    TxReceipt,
    is_zero_handle,
    normalize_handle,
)

log = logging.getLogger(__name__)

MOCK_CHAIN_ID = 31337
MOCK_VAULT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
MOCK_DECRYPTION_VERIFIER = "0xa02Cda4Ca3a71D7C46997716F4283aa851C28812"


class MockClock:
    """Block time that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    def set(self, timestamp: float):
        self.now = float(timestamp)


class MockCoprocessor(Coprocessor):
    """In-memory FHE co-processor."""

    def __init__(self, chain_id: int = MOCK_CHAIN_ID,
                 verifying_contract: str = MOCK_DECRYPTION_VERIFIER,
                 clock: Callable[[], float] = time.time):
        super().__init__(chain_id, verifying_contract)
        self.clock = clock
        self._values: Dict[str, int] = {}
        self._acl: Dict[str, Set[str]] = {}
        self._inputs: Dict[str, Tuple[str, str, bytes]] = {}
        self.decrypt_requests = 0

    # ═══════════════════════════════════════════════════════════════════════
    # CIPHERTEXT TABLE
    # ═══════════════════════════════════════════════════════════════════════

    def _store(self, value: int) -> str:
        handle = "0x" + secrets.token_bytes(32).hex()
        self._values[handle] = value & MAX_UINT64
        self._acl[handle] = set()
        return handle

    def _value(self, handle: str) -> int:
        if is_zero_handle(handle):
            return 0
        handle = normalize_handle(handle)
        if handle not in self._values:
            raise CoprocessorError("lookup", f"unknown handle {handle}")
        return self._values[handle]

    def trivial_encrypt(self, value: int) -> str:
        return self._store(value)

    def add(self, handle: str, value: int) -> str:
        return self._store(self._value(handle) + value)

    def sub(self, handle: str, value: int) -> str:
        return self._store(self._value(handle) - value)

    def allow(self, handle: str, address: str):
        self._acl[normalize_handle(handle)].add(address.lower())

    def is_allowed(self, handle: str, address: str) -> bool:
        return address.lower() in self._acl.get(normalize_handle(handle), set())

    def plaintext(self, handle: str) -> int:
        """Cleartext behind a handle, bypassing authorization (tests only)."""
        return self._value(handle)

    # ═══════════════════════════════════════════════════════════════════════
    # ENCRYPTED INPUTS
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _input_proof(handles: List[str], contract_address: str, user_address: str) -> bytes:
        data = "|".join(handles + [contract_address.lower(), user_address.lower()])
        return hashlib.sha256(data.encode()).digest()

    async def _encrypt_values(self, contract_address: str, user_address: str,
                              values: List[int]) -> Dict[str, Any]:
        handles = [self._store(v) for v in values]
        proof = self._input_proof(handles, contract_address, user_address)
        for handle in handles:
            self._inputs[handle] = (contract_address.lower(), user_address.lower(), proof)
        return {"handles": handles, "inputProof": "0x" + proof.hex()}

    def verify_input(self, handle: str, proof: bytes, contract_address: str,
                     user_address: str) -> bool:
        """Check and consume an input proof; grants the contract use of the handle."""
        handle = normalize_handle(handle)
        expected = self._inputs.get(handle)
        if expected is None:
            return False
        if expected != (contract_address.lower(), user_address.lower(), bytes(proof)):
            return False
        del self._inputs[handle]
        self.allow(handle, contract_address)
        return True

    # ═══════════════════════════════════════════════════════════════════════
    # USER DECRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    async def _request_user_decrypt(self, payload: Dict[str, Any]) -> Dict[str, str]:
        self.decrypt_requests += 1
        start = int(payload["startTimestamp"])
        days = int(payload["durationDays"])
        contracts = payload["contractAddresses"]
        user = payload["userAddress"]

        typed_message = self.create_eip712(payload["publicKey"], contracts, start, days)
        try:
            recovered = recover_typed_data_signer(typed_message, payload["signature"])
        except Exception as e:
            raise CoprocessorError("userDecrypt", f"invalid signature: {e}") from e
        if recovered.lower() != user.lower():
            raise CoprocessorError("userDecrypt", "signature does not match user")

        now = self.clock()
        if now < start or now > start + days * SECONDS_PER_DAY:
            raise CoprocessorError("userDecrypt", "authorization expired")

        scope = {c.lower() for c in contracts}
        response = {}
        for pair in payload["handleContractPairs"]:
            handle = normalize_handle(pair["handle"])
            contract = pair["contractAddress"]
            if contract.lower() not in scope:
                raise CoprocessorError("userDecrypt", "contract not authorized")
            if not (self.is_allowed(handle, user) and self.is_allowed(handle, contract)):
                raise CoprocessorError("userDecrypt", f"not allowed to decrypt {handle}")
            response[handle] = seal_value(payload["publicKey"], self._value(handle))
        return response


@dataclass
class MockLedger:
    """Vault storage shared by every connected MockVault."""
    available: Dict[str, int] = field(default_factory=dict)
    encrypted: Dict[str, str] = field(default_factory=dict)
    locks: Dict[str, LockInfo] = field(default_factory=dict)
    transactions: List[Tuple[str, str]] = field(default_factory=list)
    blocks: Any = field(default_factory=lambda: itertools.count(1))


class MockVault:
    """
    FHEVault rules on top of MockCoprocessor.

    The encrypted balance tracks available + locked; locking moves the plain
    amount out of `available` but leaves the encrypted total unchanged.
    """

    def __init__(self, coprocessor: MockCoprocessor, account_address: Optional[str] = None,
                 address: str = MOCK_VAULT_ADDRESS, clock: Callable[[], float] = time.time,
                 ledger: Optional[MockLedger] = None):
        self.coprocessor = coprocessor
        self.address = Web3.to_checksum_address(address)
        self.account_address = (Web3.to_checksum_address(account_address)
                                if account_address else None)
        self.clock = clock
        self.ledger = ledger or MockLedger()

    def connect(self, account_address: str) -> "MockVault":
        """Same deployment, different sender."""
        return MockVault(self.coprocessor, account_address, self.address,
                         self.clock, self.ledger)

    @property
    def transactions(self) -> List[Tuple[str, str]]:
        return self.ledger.transactions

    def _key(self, user: str) -> str:
        return user.lower()

    def _sender(self, method: str) -> str:
        if not self.account_address:
            raise ContractCallError(method, "no signing account configured")
        return self._key(self.account_address)

    def _revert(self, method: str, reason: str):
        log.error(f"{method} reverted: {reason}")
        raise ContractCallError(method, reason, reverted=True)

    def _receipt(self, method: str, sender: str) -> TxReceipt:
        self.ledger.transactions.append((method, sender))
        block = next(self.ledger.blocks)
        tx_hash = "0x" + hashlib.sha256(f"{method}:{sender}:{block}".encode()).hexdigest()
        return TxReceipt(tx_hash=tx_hash, status=1, block_number=block)

    def _set_encrypted(self, user: str, handle: str):
        self.ledger.encrypted[user] = handle
        self.coprocessor.allow(handle, self.address)
        self.coprocessor.allow(handle, user)

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def stake(self, value: int) -> TxReceipt:
        user = self._sender("stake")
        if value <= 0:
            self._revert("stake", "Stake amount must be positive")
        balance = self.ledger.available.get(user, 0)
        if value > MAX_UINT64 or balance + value > MAX_UINT64:
            self._revert("stake", "Amount exceeds uint64")

        self.ledger.available[user] = balance + value
        current = self.ledger.encrypted.get(user, ZERO_HANDLE)
        self._set_encrypted(user, self.coprocessor.add(current, value))
        return self._receipt("stake", user)

    async def redeem(self, amount: int) -> TxReceipt:
        user = self._sender("redeem")
        if amount <= 0:
            self._revert("redeem", "Redeem amount must be positive")
        if amount > self.ledger.available.get(user, 0):
            self._revert("redeem", "Insufficient available balance")

        self.ledger.available[user] -= amount
        self._set_encrypted(user, self.coprocessor.sub(self.ledger.encrypted[user], amount))
        return self._receipt("redeem", user)

    async def lock(self, plain_amount: int, duration_seconds: int,
                   handle: str, proof: bytes) -> TxReceipt:
        user = self._sender("lock")
        if self.ledger.locks.get(user, LockInfo.inactive()).active:
            self._revert("lock", "Lock already active")
        if plain_amount <= 0:
            self._revert("lock", "Lock amount must be positive")
        if duration_seconds <= 0:
            self._revert("lock", "Duration must be positive")
        if plain_amount > self.ledger.available.get(user, 0):
            self._revert("lock", "Insufficient available balance")
        if not self.coprocessor.verify_input(handle, proof, self.address, user):
            self._revert("lock", "Invalid input proof")

        self.ledger.available[user] -= plain_amount
        self.ledger.locks[user] = LockInfo(
            active=True,
            unlock_time=int(self.clock()) + duration_seconds,
            encrypted_amount=handle,
            plain_amount=plain_amount,
        )
        self.coprocessor.allow(handle, user)
        return self._receipt("lock", user)

    async def release_lock(self) -> TxReceipt:
        user = self._sender("releaseLock")
        lock = self.ledger.locks.get(user, LockInfo.inactive())
        if not lock.active:
            self._revert("releaseLock", "No active lock")
        if self.clock() < lock.unlock_time:
            self._revert("releaseLock", "Lock not matured")

        self.ledger.available[user] = self.ledger.available.get(user, 0) + lock.plain_amount
        self.ledger.locks[user] = LockInfo.inactive()
        return self._receipt("releaseLock", user)

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    async def get_available_balance(self, user: str) -> int:
        return self.ledger.available.get(self._key(user), 0)

    async def get_lock_info(self, user: str) -> LockInfo:
        return self.ledger.locks.get(self._key(user), LockInfo.inactive())

    async def can_release(self, user: str) -> bool:
        lock = self.ledger.locks.get(self._key(user), LockInfo.inactive())
        return lock.active and self.clock() >= lock.unlock_time

    async def get_encrypted_balance(self, user: str) -> str:
        return self.ledger.encrypted.get(self._key(user), ZERO_HANDLE)
