"""
FHE Vault SDK - Vault State View

Pull-model view of one account's vault position. The four reads are issued
in parallel and combined into an immutable VaultSnapshot; listeners are
notified whenever a refresh lands. A listener that raises is logged and
skipped; it never fails the refresh.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from .contract import ContractCallError
from .errors import ReadFailed
from .vault_types import VaultSnapshot

log = logging.getLogger(__name__)


class VaultStateView:
    """
    Cached snapshot of (available, lock, can_release, encrypted balance).

    Reads are side-effect free, so refreshes may overlap with each other and
    with pending transactions. The most recently started refresh wins; an
    older one finishing later is discarded.

    Usage:
        view = VaultStateView(vault, account)
        snap = await view.snapshot()     # cached, fetched on first use
        snap = await view.refresh()      # always re-reads
        view.subscribe(lambda s: print(s.available))
    """

    def __init__(self, vault, account: str, clock: Callable[[], float] = time.time):
        self.vault = vault
        self.account = account
        self.clock = clock
        self._cached: Optional[VaultSnapshot] = None
        self._issued = 0
        self._applied = 0
        self._listeners: List[Callable[[VaultSnapshot], None]] = []

    @property
    def cached(self) -> Optional[VaultSnapshot]:
        return self._cached

    def invalidate(self):
        self._cached = None

    def subscribe(self, callback: Callable[[VaultSnapshot], None]):
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[VaultSnapshot], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def fetch(self, account: Optional[str] = None) -> VaultSnapshot:
        """Read a fresh snapshot without touching the cache."""
        account = account or self.account
        try:
            available, lock, can_release, encrypted = await asyncio.gather(
                self.vault.get_available_balance(account),
                self.vault.get_lock_info(account),
                self.vault.can_release(account),
                self.vault.get_encrypted_balance(account),
            )
        except ContractCallError as e:
            log.error(f"Vault read failed for {account}: {e}")
            raise ReadFailed(str(e), operation="refresh", stage=e.method) from e

        return VaultSnapshot(
            account=account,
            available=int(available),
            lock=lock,
            can_release=bool(can_release),
            encrypted_balance=encrypted,
            fetched_at=self.clock(),
        )

    async def snapshot(self) -> VaultSnapshot:
        if self._cached is None:
            return await self.refresh()
        return self._cached

    async def refresh(self) -> VaultSnapshot:
        self._issued += 1
        ticket = self._issued
        snap = await self.fetch()

        if ticket < self._applied:
            log.debug(f"Discarding stale refresh #{ticket} (have #{self._applied})")
            return self._cached if self._cached is not None else snap

        self._applied = ticket
        self._cached = snap
        log.info(f"Vault state for {self.account}: {snap.state.value}, "
                 f"available={snap.available}")
        for callback in list(self._listeners):
            try:
                callback(snap)
            except Exception:
                log.exception(f"Vault state listener {callback!r} failed")
        return snap
