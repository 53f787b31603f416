"""
FHE Vault SDK - Co-processor

Client side of the FHE co-processor: encrypted input construction,
ephemeral keypairs, the EIP-712 user-decrypt message, and user decryption.

Decrypted values come back sealed to the session's ephemeral public key
(X25519 sealed box) and are opened locally with its private key.
"""

import base64
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx
from nacl.exceptions import CryptoError
from nacl.public import PrivateKey, PublicKey, SealedBox

from .vault_types import MAX_UINT64, AuthorizationKeypair, normalize_handle

log = logging.getLogger(__name__)

EIP712_DOMAIN_NAME = "Decryption"
EIP712_DOMAIN_VERSION = "1"

USER_DECRYPT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "UserDecryptRequestVerification": [
        {"name": "publicKey", "type": "bytes"},
        {"name": "contractAddresses", "type": "address[]"},
        {"name": "startTimestamp", "type": "uint256"},
        {"name": "durationDays", "type": "uint256"},
    ],
}


class CoprocessorError(Exception):
    """Co-processor request failed."""
    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"Co-processor {operation} failed: {message}")


def seal_value(public_key_hex: str, value: int) -> str:
    """Seal a cleartext value to an ephemeral public key (base64)."""
    box = SealedBox(PublicKey(bytes.fromhex(public_key_hex)))
    return base64.b64encode(box.encrypt(str(int(value)).encode())).decode()


def open_value(private_key_hex: str, sealed_b64: str) -> str:
    """Open a sealed value with the ephemeral private key; returns a decimal string."""
    box = SealedBox(PrivateKey(bytes.fromhex(private_key_hex)))
    plain = box.decrypt(base64.b64decode(sealed_b64)).decode()
    if not plain.isdigit():
        raise ValueError("sealed payload is not a decimal value")
    return plain


class EncryptedInputBuffer:
    """
    Accumulates values for one encrypted input, bound to (contract, user).

    Usage:
        buf = coprocessor.create_encrypted_input(vault_address, user_address)
        result = await buf.add64(amount).encrypt()
        handle, proof = result["handles"][0], result["inputProof"]
    """

    def __init__(self, coprocessor: "Coprocessor", contract_address: str, user_address: str):
        self.coprocessor = coprocessor
        self.contract_address = contract_address
        self.user_address = user_address
        self.values: List[int] = []

    def add64(self, value: int) -> "EncryptedInputBuffer":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Value must be integer, got {type(value)}")
        if not 0 <= value <= MAX_UINT64:
            raise ValueError(f"Value out of uint64 range: {value}")
        self.values.append(value)
        return self

    async def encrypt(self) -> Dict[str, Any]:
        if not self.values:
            raise ValueError("Nothing to encrypt")
        return await self.coprocessor._encrypt_values(
            self.contract_address, self.user_address, list(self.values))


class Coprocessor:
    """
    Base co-processor client.

    Subclasses provide the transport: _initialize, _encrypt_values and
    _request_user_decrypt.
    """

    def __init__(self, chain_id: int, verifying_contract: str):
        self.chain_id = chain_id
        self.verifying_contract = verifying_contract
        self.initialized = False

    async def initialize(self):
        await self._initialize()
        self.initialized = True
        log.info("Co-processor session initialized")

    async def _initialize(self):
        pass

    def _require_initialized(self, operation: str):
        if not self.initialized:
            raise CoprocessorError(operation, "session not initialized")

    # ═══════════════════════════════════════════════════════════════════════
    # ENCRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    def create_encrypted_input(self, contract_address: str, user_address: str) -> EncryptedInputBuffer:
        self._require_initialized("createEncryptedInput")
        return EncryptedInputBuffer(self, contract_address, user_address)

    async def _encrypt_values(self, contract_address: str, user_address: str,
                              values: List[int]) -> Dict[str, Any]:
        raise NotImplementedError

    # ═══════════════════════════════════════════════════════════════════════
    # USER DECRYPTION
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def generate_keypair() -> AuthorizationKeypair:
        """Fresh X25519 keypair, hex encoded."""
        sk = PrivateKey.generate()
        return AuthorizationKeypair(
            public_key=bytes(sk.public_key).hex(),
            private_key=bytes(sk).hex(),
        )

    def create_eip712(self, public_key: str, contract_addresses: Iterable[str],
                      start_timestamp: int, duration_days: int) -> Dict[str, Any]:
        """Typed message authorizing public_key to decrypt for contract_addresses."""
        return {
            "types": USER_DECRYPT_TYPES,
            "primaryType": "UserDecryptRequestVerification",
            "domain": {
                "name": EIP712_DOMAIN_NAME,
                "version": EIP712_DOMAIN_VERSION,
                "chainId": self.chain_id,
                "verifyingContract": self.verifying_contract,
            },
            "message": {
                "publicKey": "0x" + public_key,
                "contractAddresses": list(contract_addresses),
                "startTimestamp": int(start_timestamp),
                "durationDays": int(duration_days),
            },
        }

    async def user_decrypt(self, handle_contract_pairs: List[Dict[str, str]],
                           private_key: str, public_key: str, signature: str,
                           contract_addresses: List[str], user_address: str,
                           start_timestamp: int, duration_days: int) -> Dict[str, str]:
        """
        Request cleartext for handles owned by user_address.

        Args:
            handle_contract_pairs: [{"handle": ..., "contractAddress": ...}]
            private_key: Ephemeral private key (hex), stays local
            public_key: Ephemeral public key (hex)
            signature: EIP-712 signature (hex, no 0x)
            contract_addresses: Contracts covered by the signature
            user_address: Signer address
            start_timestamp: Start of validity (unix seconds)
            duration_days: Validity window in days

        Returns:
            {handle: decimal string} for each handle the co-processor answered
        """
        self._require_initialized("userDecrypt")
        payload = {
            "handleContractPairs": handle_contract_pairs,
            "publicKey": public_key,
            "signature": signature,
            "contractAddresses": contract_addresses,
            "userAddress": user_address,
            "startTimestamp": str(start_timestamp),
            "durationDays": str(duration_days),
        }
        sealed = await self._request_user_decrypt(payload)

        result = {}
        for handle, blob in sealed.items():
            try:
                result[normalize_handle(handle)] = open_value(private_key, blob)
            except (CryptoError, ValueError) as e:
                raise CoprocessorError("userDecrypt", f"cannot open response: {e}") from e
        return result

    async def _request_user_decrypt(self, payload: Dict[str, Any]) -> Dict[str, str]:
        raise NotImplementedError


class HttpCoprocessor(Coprocessor):
    """
    Co-processor reached over its HTTP gateway.

    Endpoints:
      GET  /v1/keyurl        - Public key material (session init)
      POST /v1/input-proof   - Encrypt values, return handles + proof
      POST /v1/user-decrypt  - Sealed cleartext for authorized handles
    """

    def __init__(self, base_url: str, chain_id: int, verifying_contract: str,
                 timeout: float = 30, client: Optional[httpx.AsyncClient] = None):
        super().__init__(chain_id, verifying_contract)
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    async def _request(self, operation: str, method: str, path: str,
                       json: Optional[dict] = None) -> Any:
        try:
            resp = await self.client.request(method, path, json=json)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            log.error(f"Co-processor {operation} HTTP {e.response.status_code}")
            raise CoprocessorError(operation, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"Co-processor {operation} error: {e}")
            raise CoprocessorError(operation, str(e)) from e

    async def _initialize(self):
        await self._request("keyurl", "GET", "/v1/keyurl")

    async def _encrypt_values(self, contract_address: str, user_address: str,
                              values: List[int]) -> Dict[str, Any]:
        body = {
            "contractAddress": contract_address,
            "userAddress": user_address,
            "values": [{"type": "euint64", "value": str(v)} for v in values],
        }
        data = await self._request("input-proof", "POST", "/v1/input-proof", json=body)
        if not isinstance(data, dict) or "handles" not in data or "inputProof" not in data:
            raise CoprocessorError("input-proof", "malformed response")
        return data

    async def _request_user_decrypt(self, payload: Dict[str, Any]) -> Dict[str, str]:
        data = await self._request("user-decrypt", "POST", "/v1/user-decrypt", json=payload)
        if not isinstance(data, dict) or not isinstance(data.get("response"), dict):
            raise CoprocessorError("user-decrypt", "malformed response")
        return data["response"]
