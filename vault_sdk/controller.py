"""
FHE Vault SDK - Vault Controller

Orchestrates user actions against the vault:

    NO_POSITION --stake--> STAKED <--lock / release--> LOCKED --(time)--> MATURING

Every mutation runs guard -> submit -> await confirmation -> refresh. A
failed submission leaves nothing to roll back; the error is surfaced with
the operation and stage that failed. Local guards only filter obviously
doomed submissions; the contract remains the authority.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterable, Optional, Set

from .amounts import parse_amount, to_decimal_string
from .contract import ContractCallError
from .decryption import DecryptionAuthorizer, DecryptionCache, DecryptionClient
from .encrypted_input import EncryptedInputBuilder
from .errors import (
    ActionInProgress,
    InsufficientAvailableBalance,
    InvalidDuration,
    LockAlreadyActive,
    LockNotMatured,
    NoActiveLock,
    SignerUnavailable,
    SubmissionFailed,
)
from .state_view import VaultStateView
from .vault_types import (
    DEFAULT_DECRYPT_DURATION_DAYS,
    MAX_UINT64,
    SECONDS_PER_DAY,
    ActionKind,
    TxReceipt,
    VaultSnapshot,
    VaultState,
    is_zero_handle,
    normalize_handle,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a confirmed mutation plus the state read right after it."""
    kind: ActionKind
    receipt: TxReceipt
    snapshot: VaultSnapshot


class VaultController:
    """
    User-facing vault operations for one account.

    Usage:
        controller = VaultController(vault, coprocessor, signer)
        await controller.stake("2.0")
        await controller.lock("1.0", duration_days=7)
        balance = await controller.decrypt_balance()
    """

    def __init__(self, vault, coprocessor=None, signer=None,
                 view: Optional[VaultStateView] = None,
                 decrypt_duration_days: int = DEFAULT_DECRYPT_DURATION_DAYS,
                 clock: Callable[[], float] = time.time):
        self.vault = vault
        self.signer = signer
        self.account = signer.address if signer is not None else vault.account_address
        self.view = view or VaultStateView(vault, self.account, clock=clock)
        self.inputs = EncryptedInputBuilder(coprocessor)
        self.authorizer = DecryptionAuthorizer(coprocessor, decrypt_duration_days, clock)
        self.decryption = DecryptionClient(coprocessor, clock)
        self.cache = DecryptionCache()
        self._pending: Set[ActionKind] = set()

    # ═══════════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════════

    async def snapshot(self) -> VaultSnapshot:
        return await self.view.snapshot()

    async def refresh(self) -> VaultSnapshot:
        return await self.view.refresh()

    async def state(self) -> VaultState:
        return (await self.view.snapshot()).state

    def is_pending(self, kind: ActionKind) -> bool:
        return kind in self._pending

    @contextmanager
    def _action_slot(self, kind: ActionKind):
        if kind in self._pending:
            log.warning(f"{kind.value} already in progress, ignoring")
            raise ActionInProgress(f"A {kind.value} is already pending",
                                   operation=kind.value, stage="single-flight")
        self._pending.add(kind)
        try:
            yield
        finally:
            self._pending.discard(kind)

    async def _submit(self, kind: ActionKind,
                      submit: Callable[[], Awaitable[TxReceipt]]) -> ActionResult:
        try:
            receipt = await submit()
        except ContractCallError as e:
            stage = "reverted" if e.reverted else "submit"
            raise SubmissionFailed(e.message, operation=kind.value, stage=stage) from e

        log.info(f"{kind.value} confirmed: {receipt.tx_hash}")
        self.view.invalidate()
        snapshot = await self.view.refresh()
        return ActionResult(kind=kind, receipt=receipt, snapshot=snapshot)

    # ═══════════════════════════════════════════════════════════════════════
    # MUTATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def stake(self, amount) -> ActionResult:
        """Stake ETH (decimal string or wei) into the vault. Valid from any state."""
        with self._action_slot(ActionKind.STAKE):
            units = parse_amount(amount)
            log.info(f"Staking {to_decimal_string(units)} ETH")
            return await self._submit(ActionKind.STAKE, lambda: self.vault.stake(units))

    async def redeem(self, amount) -> ActionResult:
        """Redeem from the available (unlocked) balance."""
        with self._action_slot(ActionKind.REDEEM):
            units = parse_amount(amount)
            snap = await self.view.snapshot()
            if units > snap.available:
                log.warning(f"Redeem of {units} exceeds available {snap.available}")
                raise InsufficientAvailableBalance(units, snap.available, operation="redeem")

            log.info(f"Redeeming {to_decimal_string(units)} ETH")
            return await self._submit(ActionKind.REDEEM, lambda: self.vault.redeem(units))

    async def lock(self, amount, duration_days: Optional[int] = None, *,
                   duration_seconds: Optional[int] = None) -> ActionResult:
        """
        Lock part of the available balance.

        The plain amount goes alongside a freshly encrypted copy so the
        contract can check available balance without decrypting.

        Args:
            amount: Decimal ETH string or wei
            duration_days: Lock duration in days
            duration_seconds: Lock duration in seconds (instead of days)
        """
        with self._action_slot(ActionKind.LOCK):
            units = parse_amount(amount)
            seconds = self._lock_seconds(duration_days, duration_seconds)

            snap = await self.view.snapshot()
            if snap.lock.active:
                log.warning("Lock rejected: a lock is already active")
                raise LockAlreadyActive("A lock is already active",
                                        operation="lock", stage="guard")
            if units > snap.available:
                log.warning(f"Lock of {units} exceeds available {snap.available}")
                raise InsufficientAvailableBalance(units, snap.available, operation="lock")
            if not self.account:
                raise SignerUnavailable("Connect your wallet to lock",
                                        operation="lock", stage="account")

            encrypted = await self.inputs.build(self.vault.address, self.account, units)
            log.info(f"Locking {to_decimal_string(units)} ETH for {seconds}s")
            return await self._submit(
                ActionKind.LOCK,
                lambda: self.vault.lock(units, seconds, encrypted.handle, encrypted.proof),
            )

    @staticmethod
    def _lock_seconds(duration_days: Optional[int], duration_seconds: Optional[int]) -> int:
        if duration_days is not None and duration_seconds is not None:
            raise InvalidDuration("Give the duration in days or seconds, not both",
                                  operation="lock", stage="input")
        if duration_seconds is None:
            if duration_days is None:
                raise InvalidDuration("Select a valid lock duration",
                                      operation="lock", stage="input")
            duration_seconds = int(duration_days) * SECONDS_PER_DAY
        seconds = int(duration_seconds)
        if seconds <= 0 or seconds > MAX_UINT64:
            raise InvalidDuration("Select a valid lock duration",
                                  operation="lock", stage="input")
        return seconds

    async def release_lock(self) -> ActionResult:
        """Release a matured lock back into the available balance."""
        with self._action_slot(ActionKind.RELEASE):
            snap = await self.view.snapshot()
            if snap.lock.active and not snap.can_release:
                # can_release depends on block time; the cache may predate maturity
                snap = await self.view.refresh()
            if not snap.lock.active:
                raise NoActiveLock("No active lock to release",
                                   operation="release", stage="guard")
            if not snap.can_release:
                log.warning(f"Release rejected: lock matures at {snap.lock.unlock_time}")
                raise LockNotMatured(f"Lock is not matured yet (unlocks at {snap.lock.unlock_time})",
                                     operation="release", stage="guard")

            return await self._submit(ActionKind.RELEASE, self.vault.release_lock)

    # ═══════════════════════════════════════════════════════════════════════
    # DECRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    async def decrypt_handles(self, handles: Iterable[str],
                              use_cache: bool = True) -> Dict[str, int]:
        """
        Cleartext for vault-owned handles.

        The Zero sentinel resolves to 0 without contacting the co-processor.
        Anything else runs a fresh authorize + decrypt session; the keypair
        is dropped when this returns or raises.
        """
        result: Dict[str, int] = {}
        wanted = []
        for handle in handles:
            handle = normalize_handle(handle)
            if is_zero_handle(handle):
                result[handle] = 0
            elif use_cache and handle in self.cache:
                result[handle] = self.cache.get(handle)
            elif handle not in wanted:
                wanted.append(handle)

        if wanted:
            statement = await self.authorizer.authorize([self.vault.address], self.signer)
            values = await self.decryption.decrypt(wanted, statement, self.signer,
                                                   self.vault.address)
            self.cache.update(values)
            result.update(values)
        return result

    async def decrypt_balance(self, use_cache: bool = True) -> int:
        """Decrypted total confidential balance (available + locked), in wei."""
        snap = await self.view.snapshot()
        values = await self.decrypt_handles([snap.encrypted_balance], use_cache)
        return values[normalize_handle(snap.encrypted_balance)]

    async def decrypt_lock_amount(self, use_cache: bool = True) -> int:
        """Decrypted amount under the active lock, in wei."""
        snap = await self.view.snapshot()
        if not snap.lock.active:
            raise NoActiveLock("No active lock to decrypt",
                               operation="decrypt_lock", stage="guard")
        values = await self.decrypt_handles([snap.lock.encrypted_amount], use_cache)
        return values[snap.lock.encrypted_amount]
