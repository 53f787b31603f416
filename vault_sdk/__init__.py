"""
FHE Vault SDK

Client for a confidential staking vault: stake ETH, hold an FHE-encrypted
balance, time-lock part of it, and decrypt your own balances off-chain.

Architecture:
  - Plain balances (available, lock amount) are public uint64 wei values
    the contract compares directly
  - The total balance and lock amount also exist as ciphertext handles,
    readable only through a signed, time-bounded user-decrypt authorization
  - The contract is the authority; local guards only skip doomed submissions

Usage:
    from vault_sdk import VaultContract, HttpCoprocessor, AccountSigner, VaultController

    vault = VaultContract(rpc_url, vault_address, private_key=key, chain_id=11155111)
    coprocessor = HttpCoprocessor(gateway_url, 11155111, verifier_address)
    await coprocessor.initialize()

    controller = VaultController(vault, coprocessor, AccountSigner.from_key(key))
    await controller.stake("2.0")
    await controller.lock("1.0", duration_days=7)
    total = await controller.decrypt_balance()
"""

from .vault_types import (
    ZERO_HANDLE, MAX_UINT64, SECONDS_PER_DAY, DEFAULT_DECRYPT_DURATION_DAYS,
    VaultState, ActionKind, LockInfo, VaultSnapshot, EncryptedInput,
    AuthorizationKeypair, AuthorizationStatement, TxReceipt,
    is_zero_handle, normalize_handle, mask_secret,
)
from .errors import (
    VaultError, InvalidAmount, InvalidDuration, InsufficientAvailableBalance,
    LockAlreadyActive, LockNotMatured, NoActiveLock, ActionInProgress,
    EncryptionUnavailable, EncryptionFailed, SignerUnavailable, SignatureRejected,
    DecryptionFailed, DecryptionIncomplete, SubmissionFailed, ReadFailed,
)
from .amounts import DECIMALS, to_units, to_decimal_string, parse_amount
from .config import DEFAULT_CONFIG, load_config
from .contract import VAULT_ABI, VaultContract, ContractCallError
from .coprocessor import Coprocessor, HttpCoprocessor, CoprocessorError
from .signer import AccountSigner
from .encrypted_input import EncryptedInputBuilder
from .decryption import DecryptionAuthorizer, DecryptionClient, DecryptionCache
from .state_view import VaultStateView
from .controller import VaultController, ActionResult

__version__ = "0.1.0"
__all__ = [
    # Types
    "ZERO_HANDLE", "MAX_UINT64", "SECONDS_PER_DAY", "DEFAULT_DECRYPT_DURATION_DAYS",
    "VaultState", "ActionKind", "LockInfo", "VaultSnapshot", "EncryptedInput",
    "AuthorizationKeypair", "AuthorizationStatement", "TxReceipt",
    "is_zero_handle", "normalize_handle", "mask_secret",
    # Errors
    "VaultError", "InvalidAmount", "InvalidDuration", "InsufficientAvailableBalance",
    "LockAlreadyActive", "LockNotMatured", "NoActiveLock", "ActionInProgress",
    "EncryptionUnavailable", "EncryptionFailed", "SignerUnavailable", "SignatureRejected",
    "DecryptionFailed", "DecryptionIncomplete", "SubmissionFailed", "ReadFailed",
    # Amounts
    "DECIMALS", "to_units", "to_decimal_string", "parse_amount",
    # Config
    "DEFAULT_CONFIG", "load_config",
    # Collaborators
    "VAULT_ABI", "VaultContract", "ContractCallError",
    "Coprocessor", "HttpCoprocessor", "CoprocessorError", "AccountSigner",
    # Core
    "EncryptedInputBuilder", "DecryptionAuthorizer", "DecryptionClient",
    "DecryptionCache", "VaultStateView", "VaultController", "ActionResult",
]
