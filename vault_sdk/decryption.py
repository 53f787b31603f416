"""
FHE Vault SDK - User Decryption

Two steps per decryption session:
  1. DecryptionAuthorizer: fresh ephemeral keypair + EIP-712 statement
     signed by the wallet (valid for 7 days, scoped to the vault contract)
  2. DecryptionClient: exchange the statement and handles for cleartext

Every session gets a new keypair, even if the previous statement has not
expired. Keypairs and statements are never stored by this module.
"""

import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from web3 import Web3

from .coprocessor import Coprocessor, CoprocessorError
from .errors import (
    DecryptionFailed,
    DecryptionIncomplete,
    SignatureRejected,
    SignerUnavailable,
)
from .vault_types import (
    DEFAULT_DECRYPT_DURATION_DAYS,
    MAX_UINT64,
    AuthorizationStatement,
    is_zero_handle,
    mask_secret,
    normalize_handle,
)

log = logging.getLogger(__name__)


def _require_session(coprocessor: Optional[Coprocessor], operation: str):
    if coprocessor is None or not coprocessor.initialized:
        raise DecryptionFailed("Decryption service not ready yet",
                               operation=operation, stage="session")


class DecryptionAuthorizer:
    """
    Produces signed user-decrypt authorizations.

    Usage:
        authorizer = DecryptionAuthorizer(coprocessor)
        statement = await authorizer.authorize([vault_address], signer)
    """

    def __init__(self, coprocessor: Coprocessor,
                 duration_days: int = DEFAULT_DECRYPT_DURATION_DAYS,
                 clock: Callable[[], float] = time.time):
        self.coprocessor = coprocessor
        self.duration_days = duration_days
        self.clock = clock

    async def authorize(self, contracts: Iterable[str], signer) -> AuthorizationStatement:
        """
        Generate a keypair and have signer authorize it for contracts.

        Raises:
            SignerUnavailable: No signer attached
            SignatureRejected: Signer declined or errored
            DecryptionFailed: Co-processor session not initialized
        """
        _require_session(self.coprocessor, "authorize")
        if signer is None:
            raise SignerUnavailable("Connect your wallet to decrypt data",
                                    operation="authorize", stage="signer")

        scope = sorted({Web3.to_checksum_address(c) for c in contracts})
        if not scope:
            raise ValueError("At least one contract address is required")

        keypair = self.coprocessor.generate_keypair()
        valid_from = int(self.clock())
        typed_message = self.coprocessor.create_eip712(
            keypair.public_key, scope, valid_from, self.duration_days)

        try:
            signature = await signer.sign_typed_data(typed_message)
        except SignatureRejected:
            raise
        except Exception as e:
            log.warning(f"Signer rejected decryption authorization: {e}")
            raise SignatureRejected(str(e), operation="authorize", stage="sign") from e

        log.info(f"Decryption authorized for {signer.address} "
                 f"({len(scope)} contract(s), {self.duration_days} days)")
        return AuthorizationStatement(
            keypair=keypair,
            contract_scope=frozenset(scope),
            signer_address=signer.address,
            valid_from=valid_from,
            validity_duration_days=self.duration_days,
            user_signature=signature,
        )


class DecryptionClient:
    """
    Exchanges an authorization statement for cleartext values.

    Zero handles must be resolved by the caller as a known 0; they are
    never sent. A handle missing from the response raises
    DecryptionIncomplete rather than defaulting to zero.
    """

    def __init__(self, coprocessor: Coprocessor, clock: Callable[[], float] = time.time):
        self.coprocessor = coprocessor
        self.clock = clock

    async def decrypt(self, handles: Sequence[str], statement: AuthorizationStatement,
                      signer, contract_address: Optional[str] = None) -> Dict[str, int]:
        """
        Decrypt handles owned by contract_address.

        Args:
            handles: Ciphertext handles, none of them the Zero sentinel
            statement: Authorization from DecryptionAuthorizer.authorize
            signer: The wallet that signed the statement
            contract_address: Owning contract; defaults to the statement's
                only contract

        Returns:
            {handle: cleartext} for every requested handle

        Raises:
            SignerUnavailable: No signer attached
            DecryptionFailed: Expired/mismatched statement or co-processor failure
            DecryptionIncomplete: Some handle was not answered
        """
        _require_session(self.coprocessor, "decrypt")
        if signer is None:
            raise SignerUnavailable("Connect your wallet to decrypt data",
                                    operation="decrypt", stage="signer")

        ordered: List[str] = []
        for handle in handles:
            if is_zero_handle(handle):
                raise ValueError("Zero handle must be resolved as 0 by the caller")
            handle = normalize_handle(handle)
            if handle not in ordered:
                ordered.append(handle)
        if not ordered:
            return {}

        contract = self._owning_contract(statement, contract_address)

        if signer.address.lower() != statement.signer_address.lower():
            raise DecryptionFailed("Statement was signed by a different address",
                                   operation="decrypt", stage="authorization")
        if statement.is_expired(self.clock()):
            raise DecryptionFailed("Authorization expired, re-authorize",
                                   operation="decrypt", stage="authorization")

        pairs = [{"handle": h, "contractAddress": contract} for h in ordered]
        signature = statement.user_signature
        if signature.startswith("0x"):
            signature = signature[2:]

        log.info(f"Requesting decryption of {len(pairs)} handle(s), "
                 f"signature {mask_secret(signature)}")
        try:
            response = await self.coprocessor.user_decrypt(
                pairs,
                statement.keypair.private_key,
                statement.keypair.public_key,
                signature,
                sorted(statement.contract_scope),
                statement.signer_address,
                statement.valid_from,
                statement.validity_duration_days,
            )
        except CoprocessorError as e:
            log.error(f"User decryption failed: {e}")
            raise DecryptionFailed(str(e), operation="decrypt", stage="coprocessor") from e

        normalized = {normalize_handle(k): v for k, v in response.items()}
        missing = [h for h in ordered if h not in normalized]
        if missing:
            log.error(f"Decryption response missing {len(missing)} handle(s)")
            raise DecryptionIncomplete(missing, operation="decrypt")

        result = {}
        for handle in ordered:
            try:
                value = int(normalized[handle])
            except (TypeError, ValueError) as e:
                raise DecryptionFailed(f"Non-numeric cleartext for {mask_secret(handle)}",
                                       operation="decrypt", stage="response") from e
            if not 0 <= value <= MAX_UINT64:
                raise DecryptionFailed(f"Cleartext out of uint64 range for {mask_secret(handle)}",
                                       operation="decrypt", stage="response")
            result[handle] = value
        return result

    @staticmethod
    def _owning_contract(statement: AuthorizationStatement,
                         contract_address: Optional[str]) -> str:
        if contract_address is None:
            if len(statement.contract_scope) != 1:
                raise ValueError("contract_address is required for multi-contract statements")
            return next(iter(statement.contract_scope))

        contract = Web3.to_checksum_address(contract_address)
        if contract not in statement.contract_scope:
            raise DecryptionFailed(f"{contract} is outside the authorized contracts",
                                   operation="decrypt", stage="authorization")
        return contract


class DecryptionCache:
    """
    In-memory cleartext cache keyed by handle.

    Lives only as long as the owning client; never written to disk.
    """

    def __init__(self):
        self._values: Dict[str, int] = {}

    def get(self, handle: str) -> Optional[int]:
        return self._values.get(normalize_handle(handle))

    def update(self, values: Dict[str, int]):
        for handle, value in values.items():
            self._values[normalize_handle(handle)] = value

    def clear(self):
        self._values.clear()

    def __contains__(self, handle) -> bool:
        return normalize_handle(handle) in self._values

    def __len__(self) -> int:
        return len(self._values)
