"""
FHE Vault SDK - Vault Contract

web3.py adapter for the FHEVault contract. Blocking web3 calls run in the
default executor so callers can await them.
"""

import asyncio
import functools
import logging
from typing import Any, Optional

from web3 import Web3
from eth_account import Account

from .vault_types import LockInfo, TxReceipt, mask_secret, normalize_handle

log = logging.getLogger(__name__)


VAULT_ABI = [
    {
        "inputs": [],
        "name": "stake",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function"
    },
    {
        "inputs": [{"name": "amount", "type": "uint64"}],
        "name": "redeem",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "plainAmount", "type": "uint64"},
            {"name": "duration", "type": "uint64"},
            {"name": "encryptedAmount", "type": "bytes32"},
            {"name": "inputProof", "type": "bytes"}
        ],
        "name": "lock",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "releaseLock",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "getAvailableBalance",
        "outputs": [{"name": "", "type": "uint64"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "getLockInfo",
        "outputs": [
            {"name": "active", "type": "bool"},
            {"name": "unlockTime", "type": "uint64"},
            {"name": "encryptedAmount", "type": "bytes32"},
            {"name": "plainAmount", "type": "uint64"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "canRelease",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "getEncryptedBalance",
        "outputs": [{"name": "", "type": "bytes32"}],
        "stateMutability": "view",
        "type": "function"
    }
]


class ContractCallError(Exception):
    """Vault contract call or transaction failed."""
    def __init__(self, method: str, message: str, reverted: bool = False):
        self.method = method
        self.message = message
        self.reverted = reverted
        kind = "reverted" if reverted else "failed"
        super().__init__(f"{method} {kind}: {message}")


class VaultContract:
    """
    Async client for a deployed FHEVault.

    Usage:
        vault = VaultContract("https://...", "0xVault", private_key="0x...")
        receipt = await vault.stake(10**18)
        available = await vault.get_available_balance(vault.account_address)
    """

    def __init__(self, rpc_url: str, address: str,
                 private_key: Optional[str] = None,
                 chain_id: Optional[int] = None,
                 gas_limit: int = 1_000_000,
                 tx_timeout: int = 120,
                 w3: Optional[Web3] = None):
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))
        self.address = Web3.to_checksum_address(address)
        self.contract = self.w3.eth.contract(address=self.address, abi=VAULT_ABI)
        self.account = Account.from_key(private_key) if private_key else None
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.tx_timeout = tx_timeout

    @property
    def account_address(self) -> Optional[str]:
        return self.account.address if self.account else None

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def _call(self, method: str, *args) -> Any:
        try:
            return getattr(self.contract.functions, method)(*args).call()
        except Exception as e:
            log.error(f"{method} call failed: {e}")
            raise ContractCallError(method, str(e)) from e

    async def get_available_balance(self, user: str) -> int:
        return int(await self._run(self._call, "getAvailableBalance",
                                   Web3.to_checksum_address(user)))

    async def get_lock_info(self, user: str) -> LockInfo:
        raw = await self._run(self._call, "getLockInfo", Web3.to_checksum_address(user))
        return LockInfo.from_tuple(raw)

    async def can_release(self, user: str) -> bool:
        return bool(await self._run(self._call, "canRelease", Web3.to_checksum_address(user)))

    async def get_encrypted_balance(self, user: str) -> str:
        raw = await self._run(self._call, "getEncryptedBalance", Web3.to_checksum_address(user))
        return normalize_handle(raw)

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def _transact(self, method: str, *args, value: int = 0) -> TxReceipt:
        if self.account is None:
            raise ContractCallError(method, "no signing account configured")

        try:
            tx_params = {
                'from': self.account.address,
                'nonce': self.w3.eth.get_transaction_count(self.account.address),
                'gas': self.gas_limit,
                'gasPrice': self.w3.eth.gas_price,
                'value': value,
            }
            if self.chain_id is not None:
                tx_params['chainId'] = self.chain_id

            tx = getattr(self.contract.functions, method)(*args).build_transaction(tx_params)

            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            tx_hex = Web3.to_hex(tx_hash)
            log.info(f"{method} TX sent: {mask_secret(tx_hex, 10, 6)}")

            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except Exception as e:
            log.error(f"{method} submission failed: {e}")
            raise ContractCallError(method, str(e)) from e

        if receipt['status'] != 1:
            log.error(f"{method} TX reverted: {tx_hex}")
            raise ContractCallError(method, f"transaction {tx_hex} reverted", reverted=True)

        log.info(f"{method} confirmed in block {receipt['blockNumber']}")
        return TxReceipt(tx_hash=tx_hex, status=receipt['status'],
                         block_number=receipt['blockNumber'])

    async def stake(self, value: int) -> TxReceipt:
        return await self._run(functools.partial(self._transact, "stake", value=value))

    async def redeem(self, amount: int) -> TxReceipt:
        return await self._run(self._transact, "redeem", amount)

    async def lock(self, plain_amount: int, duration_seconds: int,
                   handle: str, proof: bytes) -> TxReceipt:
        handle_bytes = bytes.fromhex(normalize_handle(handle)[2:])
        return await self._run(self._transact, "lock", plain_amount,
                               duration_seconds, handle_bytes, proof)

    async def release_lock(self) -> TxReceipt:
        return await self._run(self._transact, "releaseLock")
