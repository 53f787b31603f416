"""
Tests for the vault_tasks command line.
"""

import asyncio

import pytest

import vault_tasks
from vault_sdk import VaultController
from vault_sdk.mock import MOCK_VAULT_ADDRESS, MockVault


@pytest.fixture
def no_env(monkeypatch):
    for var in ("FHEVAULT_ADDRESS", "FHEVAULT_PRIVATE_KEY", "FHEVAULT_DECRYPTION_VERIFIER"):
        monkeypatch.delenv(var, raising=False)


class TestParser:
    """Tests for argument parsing."""

    def test_lock_requires_duration(self):
        """Test lock needs --days or --duration."""
        with pytest.raises(SystemExit):
            vault_tasks.build_parser().parse_args(["lock", "--amount", "1"])

    def test_lock_duration_exclusive(self):
        """Test --days and --duration cannot be combined."""
        with pytest.raises(SystemExit):
            vault_tasks.build_parser().parse_args(
                ["lock", "--amount", "1", "--days", "7", "--duration", "60"])

    def test_lock_seconds(self):
        """Test --duration parses as seconds."""
        args = vault_tasks.build_parser().parse_args(["lock", "--amount", "1", "--duration", "3600"])
        assert args.duration == 3600
        assert args.days is None

    def test_every_command_has_handler(self):
        """Test each subcommand except address maps to a coroutine."""
        parser = vault_tasks.build_parser()
        subparsers = next(a for a in parser._actions if a.dest == "command")
        assert set(subparsers.choices) - {"address"} == set(vault_tasks.COMMANDS)


class TestMain:
    """Tests for main() entry points."""

    def test_address(self, tmp_path, capsys, no_env):
        """Test the address command prints the configured vault."""
        code = vault_tasks.main(["--config", str(tmp_path / "none.json"),
                                 "--address", MOCK_VAULT_ADDRESS, "address"])
        assert code == 0
        assert capsys.readouterr().out.strip() == f"FHEVault address is {MOCK_VAULT_ADDRESS}"

    def test_no_command(self, capsys):
        """Test no command prints help and fails."""
        assert vault_tasks.main([]) == 1
        assert "FHE Vault Tasks" in capsys.readouterr().out

    def test_missing_verifier(self, tmp_path, no_env):
        """Test lock refuses to start without a decryption verifier."""
        with pytest.raises(SystemExit):
            vault_tasks.main(["--config", str(tmp_path / "none.json"),
                              "--address", MOCK_VAULT_ADDRESS,
                              "lock", "--amount", "1", "--days", "7"])


class TestRun:
    """Tests for command dispatch against the mock deployment."""

    @pytest.fixture
    def wired(self, monkeypatch, coprocessor, alice, clock):
        vault = MockVault(coprocessor, account_address=alice.address, clock=clock)
        controller = VaultController(vault, coprocessor, alice, clock=clock)
        monkeypatch.setattr(vault_tasks, "build", lambda config, need: (controller, None))
        return controller

    def test_stake_then_get_available(self, wired, capsys):
        """Test stake prints a receipt and get-available the new balance."""
        parser = vault_tasks.build_parser()

        code = asyncio.run(
            vault_tasks.run({}, parser.parse_args(["stake", "--amount", "1.5"])))
        assert code == 0
        assert "status=1" in capsys.readouterr().out

        code = asyncio.run(
            vault_tasks.run({}, parser.parse_args(["get-available"])))
        assert code == 0
        assert "(1.5 ETH)" in capsys.readouterr().out

    def test_vault_error_exit_code(self, wired):
        """Test guard failures exit with 1."""
        parser = vault_tasks.build_parser()
        code = asyncio.run(
            vault_tasks.run({}, parser.parse_args(["redeem", "--amount", "1"])))
        assert code == 1

    def test_lock_lifecycle_commands(self, wired, capsys):
        """Test lock, get-lock and both decrypt commands print cleartext."""
        parser = vault_tasks.build_parser()

        def invoke(*argv):
            return asyncio.run(vault_tasks.run({}, parser.parse_args(list(argv))))

        assert invoke("stake", "--amount", "2") == 0
        capsys.readouterr()

        assert invoke("lock", "--amount", "1", "--duration", "3600") == 0
        assert "status=1" in capsys.readouterr().out

        assert invoke("get-lock") == 0
        out = capsys.readouterr().out
        assert "Lock active: True" in out
        assert "Can release: False" in out

        assert invoke("decrypt-balance") == 0
        out = capsys.readouterr().out
        assert "Clear balance" in out
        assert "(2 ETH)" in out

        assert invoke("decrypt-lock") == 0
        out = capsys.readouterr().out
        assert "Clear lock amount" in out
        assert "(1 ETH)" in out

    def test_lock_in_days(self, wired, clock):
        """Test --days is converted before reaching the vault."""
        parser = vault_tasks.build_parser()
        asyncio.run(vault_tasks.run({}, parser.parse_args(["stake", "--amount", "1"])))
        code = asyncio.run(vault_tasks.run(
            {}, parser.parse_args(["lock", "--amount", "0.5", "--days", "7"])))
        assert code == 0
        assert wired.view.cached.lock.unlock_time == int(clock()) + 7 * 86400

    def test_decrypt_lock_without_lock(self, wired, capsys):
        """Test decrypt-lock with nothing locked reports it and succeeds."""
        parser = vault_tasks.build_parser()
        code = asyncio.run(vault_tasks.run({}, parser.parse_args(["decrypt-lock"])))
        assert code == 0
        assert capsys.readouterr().out.strip() == "No active lock"
