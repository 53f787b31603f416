#!/usr/bin/env python3
"""
FHE Vault Tasks

Command-line access to a deployed FHEVault.

Usage:
    # Print the configured vault address
    python3 vault_tasks.py address

    # Stake / redeem ETH
    python3 vault_tasks.py stake --amount 2.0
    python3 vault_tasks.py redeem --amount 0.5

    # Lock for 7 days (or --duration 3600 for seconds), release when matured
    python3 vault_tasks.py lock --amount 1.0 --days 7
    python3 vault_tasks.py release-lock

    # Plain reads
    python3 vault_tasks.py get-available [--target 0x...]
    python3 vault_tasks.py get-lock [--target 0x...]

    # Decrypt your own encrypted balances
    python3 vault_tasks.py decrypt-balance
    python3 vault_tasks.py decrypt-lock

Configuration:
    --config vault_config.json, overridden by FHEVAULT_* environment
    variables. Set FHEVAULT_PRIVATE_KEY in the environment (NEVER commit!).
"""

import argparse
import asyncio
import logging
import sys

from vault_sdk import (
    AccountSigner,
    CoprocessorError,
    HttpCoprocessor,
    VaultContract,
    VaultController,
    VaultError,
    load_config,
    to_decimal_string,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
log = logging.getLogger('vault_tasks')

# Commands that need a live co-processor session
COPROCESSOR_COMMANDS = {"lock", "decrypt-balance", "decrypt-lock"}


def build(config: dict, need_coprocessor: bool):
    """Wire vault, signer and co-processor from config."""
    if not config["vault_address"]:
        raise SystemExit("No vault address configured (--address or FHEVAULT_ADDRESS)")

    private_key = config["private_key"] or None
    vault = VaultContract(
        config["rpc_url"],
        config["vault_address"],
        private_key=private_key,
        chain_id=config["chain_id"],
        gas_limit=config["gas_limit"],
        tx_timeout=config["tx_timeout"],
    )
    signer = AccountSigner.from_key(private_key) if private_key else None

    coprocessor = None
    if need_coprocessor:
        if not config["decryption_verifier"]:
            raise SystemExit("No decryption verifier configured (FHEVAULT_DECRYPTION_VERIFIER)")
        coprocessor = HttpCoprocessor(
            config["coprocessor_url"],
            config["chain_id"],
            config["decryption_verifier"],
            timeout=config["coprocessor_timeout"],
        )

    controller = VaultController(
        vault, coprocessor, signer,
        decrypt_duration_days=config["decrypt_duration_days"],
    )
    return controller, coprocessor


def print_receipt(result):
    print(f"tx:{result.receipt.tx_hash} status={result.receipt.status}")


# ============ COMMANDS ============

async def cmd_stake(controller, args):
    print_receipt(await controller.stake(args.amount))


async def cmd_redeem(controller, args):
    print_receipt(await controller.redeem(args.amount))


async def cmd_get_available(controller, args):
    target = args.target or controller.account
    if not target:
        raise SystemExit("No target address (--target or FHEVAULT_PRIVATE_KEY)")
    snap = await controller.view.fetch(target)
    print(f"Available balance for {target}: {snap.available} wei "
          f"({to_decimal_string(snap.available)} ETH)")


async def cmd_lock(controller, args):
    if args.duration is not None:
        result = await controller.lock(args.amount, duration_seconds=args.duration)
    else:
        result = await controller.lock(args.amount, duration_days=args.days)
    print_receipt(result)


async def cmd_release_lock(controller, args):
    print_receipt(await controller.release_lock())


async def cmd_get_lock(controller, args):
    target = args.target or controller.account
    if not target:
        raise SystemExit("No target address (--target or FHEVAULT_PRIVATE_KEY)")
    snap = await controller.view.fetch(target)
    print(f"Lock active: {snap.lock.active}")
    print(f"Unlock time: {snap.lock.unlock_time}")
    print(f"Plain amount locked: {snap.lock.plain_amount} wei")
    print(f"Encrypted amount handle: {snap.lock.encrypted_amount}")
    print(f"Can release: {snap.can_release}")


async def cmd_decrypt_balance(controller, args):
    snap = await controller.snapshot()
    clear = await controller.decrypt_balance()
    print(f"Encrypted balance: {snap.encrypted_balance}")
    print(f"Clear balance    : {clear} wei ({to_decimal_string(clear)} ETH)")


async def cmd_decrypt_lock(controller, args):
    snap = await controller.snapshot()
    if not snap.lock.active:
        print("No active lock")
        return
    clear = await controller.decrypt_lock_amount()
    print(f"Encrypted lock amount: {snap.lock.encrypted_amount}")
    print(f"Clear lock amount    : {clear} wei ({to_decimal_string(clear)} ETH)")


COMMANDS = {
    "stake": cmd_stake,
    "redeem": cmd_redeem,
    "get-available": cmd_get_available,
    "lock": cmd_lock,
    "release-lock": cmd_release_lock,
    "get-lock": cmd_get_lock,
    "decrypt-balance": cmd_decrypt_balance,
    "decrypt-lock": cmd_decrypt_lock,
}


async def run(config: dict, args) -> int:
    need_coprocessor = args.command in COPROCESSOR_COMMANDS
    controller, coprocessor = build(config, need_coprocessor)
    try:
        if coprocessor is not None:
            await coprocessor.initialize()
        await COMMANDS[args.command](controller, args)
        return 0
    except (VaultError, CoprocessorError) as e:
        log.error(str(e))
        return 1
    finally:
        if coprocessor is not None:
            await coprocessor.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FHE Vault Tasks")
    parser.add_argument("--config", "-c", default="vault_config.json", help="Config file path")
    parser.add_argument("--address", help="FHEVault contract address (overrides config)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("address", help="Print the FHEVault address")

    stake_parser = subparsers.add_parser("stake", help="Stake ETH to mint encrypted fETH")
    stake_parser.add_argument("--amount", required=True, help="Amount of ETH to stake")

    redeem_parser = subparsers.add_parser("redeem", help="Redeem available fETH back to ETH")
    redeem_parser.add_argument("--amount", required=True, help="Amount of ETH to redeem")

    avail_parser = subparsers.add_parser("get-available", help="Read available fETH balance")
    avail_parser.add_argument("--target", help="User address to query (default: signer)")

    lock_parser = subparsers.add_parser("lock", help="Lock fETH for a duration")
    lock_parser.add_argument("--amount", required=True, help="Amount of ETH to lock")
    duration = lock_parser.add_mutually_exclusive_group(required=True)
    duration.add_argument("--days", type=int, help="Lock duration in days")
    duration.add_argument("--duration", type=int, help="Lock duration in seconds")

    subparsers.add_parser("release-lock", help="Release a matured lock")

    lock_info_parser = subparsers.add_parser("get-lock", help="Retrieve lock info")
    lock_info_parser.add_argument("--target", help="User address to query (default: signer)")

    subparsers.add_parser("decrypt-balance", help="Decrypt encrypted fETH balance for signer")
    subparsers.add_parser("decrypt-lock", help="Decrypt locked amount for signer")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = load_config(args.config)
    if args.address:
        config["vault_address"] = args.address

    if args.command == "address":
        print(f"FHEVault address is {config['vault_address'] or '(not configured)'}")
        return 0

    return asyncio.run(run(config, args))


if __name__ == "__main__":
    sys.exit(main())
