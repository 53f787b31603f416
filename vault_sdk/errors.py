"""
FHE Vault SDK - Errors

Every failure surfaced by the core carries the operation and the
guard/stage that failed. Nothing here is retried automatically.
"""

from typing import Iterable, Optional


class VaultError(Exception):
    """Base class for all vault client failures."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 stage: Optional[str] = None):
        self.message = message
        self.operation = operation
        self.stage = stage
        prefix = ""
        if operation:
            prefix = f"{operation}/{stage}: " if stage else f"{operation}: "
        super().__init__(f"{prefix}{message}")


# Local input validation (never reaches the network)

class InvalidAmount(VaultError):
    """Malformed or out-of-range amount."""


class InvalidDuration(VaultError):
    """Lock duration is not positive."""


# Local pre-checks mirroring on-chain reverts

class InsufficientAvailableBalance(VaultError):
    """Requested amount exceeds the unlocked balance."""

    def __init__(self, requested: int, available: int, operation: Optional[str] = None):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Amount {requested} exceeds available balance {available}",
            operation=operation, stage="guard",
        )


class LockAlreadyActive(VaultError):
    """A lock is already active for this account."""


class LockNotMatured(VaultError):
    """The active lock cannot be released yet."""


class NoActiveLock(LockNotMatured):
    """There is no lock to release or decrypt."""


class ActionInProgress(VaultError):
    """Another action of the same kind is still pending."""


# Co-processor: input construction

class EncryptionUnavailable(VaultError):
    """Co-processor session not initialized."""


class EncryptionFailed(VaultError):
    """Encryption or proof generation failed."""


# Wallet / signing

class SignerUnavailable(VaultError):
    """No signer attached (wallet not connected)."""


class SignatureRejected(VaultError):
    """Signer declined or failed to sign."""


# Co-processor: decryption

class DecryptionFailed(VaultError):
    """Network or authorization failure during user decryption."""


class DecryptionIncomplete(VaultError):
    """Response did not contain every requested handle."""

    def __init__(self, missing: Iterable[str], operation: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(
            f"No cleartext returned for {len(self.missing)} handle(s)",
            operation=operation, stage="response",
        )


# Collaborator contract

class SubmissionFailed(VaultError):
    """Transaction construction, broadcast or execution failed."""


class ReadFailed(VaultError):
    """A state refresh could not complete."""
