"""
FHE Vault SDK - Data Types

Plaintext accounting records and opaque ciphertext handles for the
confidential vault.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple
import time


# 32 zero bytes: the contract's "no ciphertext yet" value
ZERO_HANDLE = "0x" + "00" * 32

MAX_UINT64 = (1 << 64) - 1

SECONDS_PER_DAY = 86400

# Decryption authorizations are valid for a week
DEFAULT_DECRYPT_DURATION_DAYS = 7


def normalize_handle(handle) -> str:
    """Render a handle (bytes or hex) as lowercase 0x-prefixed 32-byte hex."""
    if handle is None:
        return ZERO_HANDLE
    if isinstance(handle, (bytes, bytearray)):
        raw = bytes(handle)
    else:
        text = str(handle).strip()
        if text.lower().startswith("0x"):
            text = text[2:]
        if not text:
            return ZERO_HANDLE
        raw = bytes.fromhex(text)
    if len(raw) > 32:
        raise ValueError(f"Handle longer than 32 bytes: {len(raw)}")
    return "0x" + raw.rjust(32, b"\x00").hex()


def is_zero_handle(handle) -> bool:
    """True for the Zero sentinel (None, empty, 0x or the all-zero hash)."""
    return normalize_handle(handle) == ZERO_HANDLE


def mask_secret(secret: str, visible_prefix: int = 8, visible_suffix: int = 4) -> str:
    """Mask a secret for safe logging. NEVER log full signatures/keys."""
    if not secret or len(secret) <= visible_prefix + visible_suffix:
        return "***"
    return f"{secret[:visible_prefix]}...{secret[-visible_suffix:]}"


class VaultState(Enum):
    """Position state as observed through a snapshot"""
    NO_POSITION = "no_position"
    STAKED = "staked"
    LOCKED = "locked"
    MATURING = "maturing"


class ActionKind(Enum):
    """Mutating action slots (one in flight per kind)"""
    STAKE = "stake"
    REDEEM = "redeem"
    LOCK = "lock"
    RELEASE = "release"


@dataclass(frozen=True)
class LockInfo:
    """
    Time lock on part of the confidential balance.

    An inactive lock always carries plain_amount == 0 and the Zero
    encrypted amount.
    """
    active: bool
    unlock_time: int
    encrypted_amount: str
    plain_amount: int

    def __post_init__(self):
        object.__setattr__(self, "encrypted_amount", normalize_handle(self.encrypted_amount))
        if not self.active and (self.plain_amount != 0 or not is_zero_handle(self.encrypted_amount)):
            raise ValueError("Inactive lock must not carry an amount")

    @classmethod
    def inactive(cls) -> "LockInfo":
        return cls(active=False, unlock_time=0, encrypted_amount=ZERO_HANDLE, plain_amount=0)

    @classmethod
    def from_tuple(cls, raw: Tuple) -> "LockInfo":
        """Decode getLockInfo's (active, unlockTime, encryptedAmount, plainAmount)."""
        active, unlock_time, encrypted_amount, plain_amount = raw
        if not active:
            return cls.inactive()
        return cls(
            active=True,
            unlock_time=int(unlock_time),
            encrypted_amount=encrypted_amount,
            plain_amount=int(plain_amount),
        )

    def is_matured(self, now: Optional[float] = None) -> bool:
        if not self.active:
            return False
        now = time.time() if now is None else now
        return now >= self.unlock_time

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "unlock_time": self.unlock_time,
            "encrypted_amount": self.encrypted_amount,
            "plain_amount": self.plain_amount,
        }


@dataclass(frozen=True)
class VaultSnapshot:
    """
    Best-effort combination of the four vault reads for one account.

    The reads are not atomic; treat a snapshot as advisory and re-fetch
    after any state-mutating action.
    """
    account: str
    available: int
    lock: LockInfo
    can_release: bool
    encrypted_balance: str
    fetched_at: float = field(default_factory=time.time)

    @property
    def has_position(self) -> bool:
        return not is_zero_handle(self.encrypted_balance)

    @property
    def state(self) -> VaultState:
        if self.lock.active:
            return VaultState.MATURING if self.can_release else VaultState.LOCKED
        if not self.has_position:
            return VaultState.NO_POSITION
        return VaultState.STAKED

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "available": self.available,
            "lock": self.lock.to_dict(),
            "can_release": self.can_release,
            "encrypted_balance": self.encrypted_balance,
            "state": self.state.value,
            "fetched_at": self.fetched_at,
        }


@dataclass(frozen=True)
class EncryptedInput:
    """Ciphertext handle plus its input proof. Single use: mint one per submission."""
    handle: str
    proof: bytes
    contract_address: str
    user_address: str

    @property
    def proof_hex(self) -> str:
        return "0x" + self.proof.hex()


@dataclass(frozen=True)
class AuthorizationKeypair:
    """Ephemeral keypair for one decryption session. Never persisted."""
    public_key: str
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class AuthorizationStatement:
    """Signed, time-bounded, contract-scoped permission for one keypair."""
    keypair: AuthorizationKeypair
    contract_scope: FrozenSet[str]
    signer_address: str
    valid_from: int
    validity_duration_days: int
    user_signature: str = field(repr=False)

    @property
    def public_key(self) -> str:
        return self.keypair.public_key

    @property
    def expires_at(self) -> int:
        return self.valid_from + self.validity_duration_days * SECONDS_PER_DAY

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now > self.expires_at


@dataclass(frozen=True)
class TxReceipt:
    """Confirmed transaction"""
    tx_hash: str
    status: int
    block_number: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "block_number": self.block_number,
        }
