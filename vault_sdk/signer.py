"""
FHE Vault SDK - Signer

Wallet-side signing of EIP-712 typed messages.
"""

import logging
from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount

from .errors import SignatureRejected

log = logging.getLogger(__name__)


class AccountSigner:
    """
    Signs typed data with a local eth-account key.

    Usage:
        signer = AccountSigner.from_key("0x...")
        signature = await signer.sign_typed_data(typed_message)
    """

    def __init__(self, account: LocalAccount):
        self.account = account

    @classmethod
    def from_key(cls, private_key: str) -> "AccountSigner":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        return self.account.address

    async def sign_typed_data(self, typed_message: Dict[str, Any]) -> str:
        """Return the 0x-prefixed signature over an EIP-712 message."""
        try:
            signable = encode_typed_data(full_message=typed_message)
            signed = self.account.sign_message(signable)
        except Exception as e:
            log.error(f"Typed data signing failed: {e}")
            raise SignatureRejected(str(e), operation="sign_typed_data") from e
        return "0x" + bytes(signed.signature).hex()


def recover_typed_data_signer(typed_message: Dict[str, Any], signature: str) -> str:
    """Address that produced signature over typed_message."""
    signable = encode_typed_data(full_message=typed_message)
    if not signature.startswith("0x"):
        signature = "0x" + signature
    return Account.recover_message(signable, signature=signature)
