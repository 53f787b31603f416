"""
FHE Vault SDK - Configuration

Defaults, overlaid by a JSON config file, overlaid by FHEVAULT_* environment
variables. The private key should come from the environment (NEVER commit!).
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .vault_types import DEFAULT_DECRYPT_DURATION_DAYS

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    # Sepolia RPC
    "rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
    "chain_id": 11155111,

    # FHEVault deployment
    "vault_address": "",

    # Signer (set via FHEVAULT_PRIVATE_KEY)
    "private_key": "",

    # FHE co-processor gateway
    "coprocessor_url": "https://relayer.testnet.zama.cloud",
    "coprocessor_timeout": 30,
    "decryption_verifier": "",

    # Transactions
    "tx_timeout": 120,
    "gas_limit": 1_000_000,

    # User decryption
    "decrypt_duration_days": DEFAULT_DECRYPT_DURATION_DAYS,
}

ENV_OVERRIDES = {
    "FHEVAULT_RPC_URL": "rpc_url",
    "FHEVAULT_CHAIN_ID": "chain_id",
    "FHEVAULT_ADDRESS": "vault_address",
    "FHEVAULT_PRIVATE_KEY": "private_key",
    "FHEVAULT_COPROCESSOR_URL": "coprocessor_url",
    "FHEVAULT_DECRYPTION_VERIFIER": "decryption_verifier",
}

INT_FIELDS = ("chain_id", "coprocessor_timeout", "tx_timeout", "gas_limit",
              "decrypt_duration_days")


def load_config(path: Optional[str] = None,
                env: Optional[Mapping[str, str]] = None) -> dict:
    """
    Build the effective configuration.

    Args:
        path: Optional JSON config file; ignored if it does not exist
        env: Environment mapping (defaults to os.environ)

    Returns:
        Config dict with every DEFAULT_CONFIG key present

    Raises:
        ValueError: If the file is not valid JSON or an integer field is not numeric
    """
    env = os.environ if env is None else env
    config = copy.deepcopy(DEFAULT_CONFIG)

    if path:
        config_path = Path(path)
        if config_path.exists():
            try:
                data = json.loads(config_path.read_text())
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid config file {config_path}: {e}") from e
            unknown = set(data) - set(DEFAULT_CONFIG)
            if unknown:
                log.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
            config.update({k: v for k, v in data.items() if k in DEFAULT_CONFIG})
            log.info(f"Loaded config from {config_path}")
        else:
            log.warning(f"Config file {config_path} not found, using defaults")

    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            config[key] = value

    for key in INT_FIELDS:
        try:
            config[key] = int(config[key])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Config field {key} must be an integer, got {config[key]!r}") from e

    return config
