"""
Tests for VaultController.

Tests:
- Stake / lock / release lifecycle and derived state
- Local guards never submit a transaction
- Contract reverts surface as SubmissionFailed
- Single-flight per action kind
- Decryption of balance and lock amount, Zero sentinel, caching
"""

import asyncio

import pytest

from vault_sdk import (
    ActionInProgress,
    ActionKind,
    DecryptionFailed,
    EncryptionUnavailable,
    InsufficientAvailableBalance,
    InvalidAmount,
    InvalidDuration,
    LockAlreadyActive,
    LockNotMatured,
    NoActiveLock,
    SignerUnavailable,
    SubmissionFailed,
    VaultController,
    VaultState,
)
from vault_sdk.mock import MockVault

ETH = 10 ** 18
HOUR = 3600


class GatedStakeVault(MockVault):
    """Stake transactions wait for the gate before confirming."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()

    async def stake(self, value):
        await self.gate.wait()
        return await super().stake(value)


class TestLifecycle:
    """Tests for the stake -> lock -> release flow."""

    @pytest.mark.asyncio
    async def test_stake_lock_release(self, controller, vault, clock):
        """Test the full position lifecycle against block time."""
        result = await controller.stake("2.0")
        assert result.kind == ActionKind.STAKE
        assert result.receipt.succeeded
        assert result.snapshot.available == 2 * ETH
        assert result.snapshot.state == VaultState.STAKED

        result = await controller.lock("1.0", duration_seconds=HOUR)
        snap = result.snapshot
        assert snap.available == 1 * ETH
        assert snap.lock.active
        assert snap.lock.plain_amount == 1 * ETH
        assert snap.lock.unlock_time == int(clock()) + HOUR
        assert not snap.can_release
        assert snap.state == VaultState.LOCKED

        with pytest.raises(LockNotMatured):
            await controller.release_lock()

        clock.advance(HOUR)
        snap = await controller.refresh()
        assert snap.can_release
        assert snap.state == VaultState.MATURING

        result = await controller.release_lock()
        assert result.snapshot.available == 2 * ETH
        assert not result.snapshot.lock.active
        assert result.snapshot.state == VaultState.STAKED

        assert [method for method, _ in vault.transactions] == ["stake", "lock", "releaseLock"]

    @pytest.mark.asyncio
    async def test_release_after_maturity_without_refresh(self, controller, clock):
        """Test release re-reads a cached snapshot taken before maturity."""
        await controller.stake("2")
        await controller.lock("1", duration_seconds=HOUR)
        clock.advance(HOUR + 1)

        result = await controller.release_lock()

        assert result.snapshot.available == 2 * ETH
        assert not result.snapshot.lock.active

    @pytest.mark.asyncio
    async def test_lock_in_days(self, controller, clock):
        """Test a day-based duration converts to seconds."""
        await controller.stake("1")
        result = await controller.lock("0.5", duration_days=7)
        assert result.snapshot.lock.unlock_time == int(clock()) + 7 * 86400

    @pytest.mark.asyncio
    async def test_redeem(self, controller):
        """Test redeeming reduces the available balance."""
        await controller.stake("2")
        result = await controller.redeem("0.5")
        assert result.snapshot.available == 1_500_000_000_000_000_000

    @pytest.mark.asyncio
    async def test_wei_amounts(self, controller):
        """Test integer amounts are taken as wei."""
        result = await controller.stake(123)
        assert result.snapshot.available == 123

    @pytest.mark.asyncio
    async def test_state_property(self, controller):
        """Test state() follows the cached snapshot."""
        assert await controller.state() == VaultState.NO_POSITION
        await controller.stake("1")
        assert await controller.state() == VaultState.STAKED


class TestGuards:
    """Tests for local pre-checks; none of them may submit."""

    @pytest.mark.asyncio
    async def test_redeem_exceeds_available(self, controller, vault):
        """Test redeem above available is rejected locally."""
        await controller.stake("1")
        with pytest.raises(InsufficientAvailableBalance) as exc_info:
            await controller.redeem("1.5")
        assert exc_info.value.requested == 1_500_000_000_000_000_000
        assert exc_info.value.available == ETH
        assert len(vault.transactions) == 1

    @pytest.mark.asyncio
    async def test_locked_funds_not_redeemable(self, controller, vault):
        """Test locked funds do not count as available."""
        await controller.stake("2")
        await controller.lock("1.5", duration_seconds=HOUR)
        with pytest.raises(InsufficientAvailableBalance):
            await controller.redeem("1")
        assert len(vault.transactions) == 2

    @pytest.mark.asyncio
    async def test_lock_exceeds_available(self, controller, vault):
        """Test lock above available is rejected before encryption."""
        await controller.stake("1")
        with pytest.raises(InsufficientAvailableBalance):
            await controller.lock("2", duration_seconds=HOUR)
        assert len(vault.transactions) == 1

    @pytest.mark.asyncio
    async def test_second_lock(self, controller, vault):
        """Test only one lock may be active."""
        await controller.stake("2")
        await controller.lock("1", duration_seconds=HOUR)
        with pytest.raises(LockAlreadyActive):
            await controller.lock("0.5", duration_seconds=HOUR)
        assert len(vault.transactions) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {},
        {"duration_days": 0},
        {"duration_seconds": -1},
        {"duration_days": 1, "duration_seconds": 60},
    ])
    async def test_invalid_duration(self, controller, vault, kwargs):
        """Test missing, non-positive or doubled durations."""
        await controller.stake("1")
        with pytest.raises(InvalidDuration):
            await controller.lock("0.5", **kwargs)
        assert len(vault.transactions) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "18.446744073709551616"])
    async def test_invalid_amount(self, controller, vault, amount):
        """Test malformed amounts never reach the vault."""
        with pytest.raises(InvalidAmount):
            await controller.stake(amount)
        assert vault.transactions == []

    @pytest.mark.asyncio
    async def test_release_without_lock(self, controller, vault):
        """Test release with nothing locked."""
        await controller.stake("1")
        with pytest.raises(NoActiveLock):
            await controller.release_lock()
        assert len(vault.transactions) == 1

    @pytest.mark.asyncio
    async def test_lock_without_coprocessor(self, vault, alice):
        """Test lock needs an encryption session."""
        controller = VaultController(vault, None, alice)
        await controller.stake("1")
        with pytest.raises(EncryptionUnavailable):
            await controller.lock("0.5", duration_seconds=HOUR)
        assert len(vault.transactions) == 1


class TestSubmission:
    """Tests for contract-side failures and single-flight."""

    @pytest.mark.asyncio
    async def test_revert_on_stale_guard(self, controller, vault, alice):
        """Test the contract stays the authority when the cache is stale."""
        await controller.stake("2")
        await vault.connect(alice.address).redeem(2 * ETH)

        with pytest.raises(SubmissionFailed) as exc_info:
            await controller.redeem("1")
        assert exc_info.value.operation == "redeem"
        assert exc_info.value.stage == "reverted"
        assert "Insufficient available balance" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_single_flight(self, coprocessor, alice, clock):
        """Test a second stake is refused while the first is pending."""
        vault = GatedStakeVault(coprocessor, account_address=alice.address, clock=clock)
        controller = VaultController(vault, coprocessor, alice, clock=clock)

        first = asyncio.ensure_future(controller.stake("1"))
        while not controller.is_pending(ActionKind.STAKE):
            await asyncio.sleep(0)

        with pytest.raises(ActionInProgress):
            await controller.stake("1")

        vault.gate.set()
        result = await first
        assert result.snapshot.available == ETH
        assert not controller.is_pending(ActionKind.STAKE)
        assert len(vault.transactions) == 1

    @pytest.mark.asyncio
    async def test_pending_cleared_on_failure(self, controller):
        """Test a failed action releases its slot."""
        with pytest.raises(InvalidAmount):
            await controller.stake("0")
        assert not controller.is_pending(ActionKind.STAKE)
        await controller.stake("1")


class TestDecryption:
    """Tests for balance and lock decryption."""

    @pytest.mark.asyncio
    async def test_zero_balance_without_session(self, controller, coprocessor):
        """Test a never-staked balance is 0 with no co-processor request."""
        assert await controller.decrypt_balance() == 0
        assert coprocessor.decrypt_requests == 0

    @pytest.mark.asyncio
    async def test_balance_includes_locked(self, controller):
        """Test the encrypted total covers available plus locked."""
        await controller.stake("2")
        await controller.lock("1", duration_seconds=HOUR)

        assert await controller.decrypt_balance() == 2 * ETH
        assert await controller.decrypt_lock_amount() == ETH

    @pytest.mark.asyncio
    async def test_balance_after_redeem(self, controller):
        """Test the encrypted total follows redeems."""
        await controller.stake("2")
        await controller.redeem("0.5")
        assert await controller.decrypt_balance() == 1_500_000_000_000_000_000

    @pytest.mark.asyncio
    async def test_cache(self, controller, coprocessor):
        """Test repeated decryption of the same handle hits the cache."""
        await controller.stake("1")
        await controller.decrypt_balance()
        await controller.decrypt_balance()
        assert coprocessor.decrypt_requests == 1

        await controller.decrypt_balance(use_cache=False)
        assert coprocessor.decrypt_requests == 2

    @pytest.mark.asyncio
    async def test_new_handle_after_stake(self, controller, coprocessor):
        """Test a changed balance produces a new handle and a new request."""
        await controller.stake("1")
        assert await controller.decrypt_balance() == ETH
        await controller.stake("1")
        assert await controller.decrypt_balance() == 2 * ETH
        assert coprocessor.decrypt_requests == 2

    @pytest.mark.asyncio
    async def test_lock_amount_without_lock(self, controller):
        """Test decrypting a lock that does not exist."""
        with pytest.raises(NoActiveLock):
            await controller.decrypt_lock_amount()

    @pytest.mark.asyncio
    async def test_without_coprocessor(self, vault, alice, clock):
        """Test decrypting without a co-processor is a DecryptionFailed."""
        controller = VaultController(vault, None, alice, clock=clock)
        await controller.stake("1")
        with pytest.raises(DecryptionFailed) as exc_info:
            await controller.decrypt_balance()
        assert exc_info.value.stage == "session"

    @pytest.mark.asyncio
    async def test_without_signer(self, vault, coprocessor, clock):
        """Test a read-only controller cannot decrypt."""
        await vault.stake(ETH)
        controller = VaultController(vault, coprocessor, None, clock=clock)
        with pytest.raises(SignerUnavailable):
            await controller.decrypt_balance()
