"""
FHE Vault SDK - Encrypted Input Builder

Wraps a plaintext amount into a ciphertext handle plus input proof, scoped
to one (contract, user) pair.
"""

import logging

from .coprocessor import Coprocessor, CoprocessorError
from .errors import EncryptionFailed, EncryptionUnavailable
from .vault_types import EncryptedInput, mask_secret, normalize_handle

log = logging.getLogger(__name__)


class EncryptedInputBuilder:
    """
    Builds single-use encrypted inputs.

    A proof is bound to the transaction it was minted for; a failed or
    retried submission needs a new one, so nothing here is cached.
    """

    def __init__(self, coprocessor: Coprocessor):
        self.coprocessor = coprocessor

    async def build(self, contract_address: str, user_address: str, amount: int) -> EncryptedInput:
        """
        Encrypt amount as a euint64 for contract_address / user_address.

        Raises:
            EncryptionUnavailable: Co-processor session not initialized
            EncryptionFailed: Any lower-level encryption or network failure
        """
        if self.coprocessor is None or not self.coprocessor.initialized:
            raise EncryptionUnavailable("Encryption service not ready yet",
                                        operation="encrypt", stage="session")

        try:
            result = await (self.coprocessor
                            .create_encrypted_input(contract_address, user_address)
                            .add64(amount)
                            .encrypt())
            handle = normalize_handle(result["handles"][0])
            proof_hex = str(result["inputProof"])
            proof = bytes.fromhex(proof_hex[2:] if proof_hex.startswith("0x") else proof_hex)
        except (CoprocessorError, KeyError, IndexError, TypeError, ValueError) as e:
            log.error(f"Encryption failed: {e}")
            raise EncryptionFailed(str(e), operation="encrypt", stage="coprocessor") from e

        log.info(f"Encrypted input ready: handle {mask_secret(handle, 10, 4)}")
        return EncryptedInput(
            handle=handle,
            proof=proof,
            contract_address=contract_address,
            user_address=user_address,
        )
