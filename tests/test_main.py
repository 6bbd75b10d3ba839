"""
Tests for main.py — the click CLI.

Uses click's CliRunner with a fake executor and a temp history directory.
Covers: list (+ --code), run (json verdict, exit codes, operator input via
options and prompts, remote credentials), history.
"""

import json
from concurrent.futures import Future

import pytest
from click.testing import CliRunner

import printfix.history as history_mod
import printfix.main as main_mod
from printfix.engine.executor import PowerShellExecutor
from printfix.main import cli
from printfix.models import ExecutionOutcome, FixResult


# ── Helpers ───────────────────────────────────────────────────────────────────

@pytest.fixture
def env(tmp_path, monkeypatch, fake_executor):
    """Isolated history dir + fake executor; returns (invoke, executor)."""
    monkeypatch.setattr(history_mod, "_HISTORY_DIR", tmp_path / "history")
    state = {"executor": fake_executor}
    monkeypatch.setattr(
        PowerShellExecutor, "from_config", classmethod(lambda cls, config=None: state["executor"]),
    )
    config = tmp_path / "missing.toml"
    runner = CliRunner()

    def invoke(*args, input=None):
        return runner.invoke(cli, ["--config", str(config), *args], input=input)

    return invoke, state


# ── list ──────────────────────────────────────────────────────────────────────

class TestList:
    def test_lists_every_fixer(self, env):
        invoke, _ = env
        result = invoke("list")
        assert result.exit_code == 0
        for fixer_id in ("spooler_reset", "rpc_auth_11b", "network_diagnostics", "driver_reinstall"):
            assert fixer_id in result.output

    def test_filter_by_code(self, env):
        invoke, _ = env
        result = invoke("list", "--code", "0x0000011b")
        assert "rpc_auth_11b" in result.output
        assert "spooler_reset" not in result.output

    def test_no_match(self, env):
        invoke, _ = env
        result = invoke("list", "--code", "0xdeadbeef")
        assert result.exit_code == 0
        assert "No fixer matches" in result.output


# ── run ───────────────────────────────────────────────────────────────────────

class TestRun:
    def test_unknown_fixer_is_usage_error(self, env):
        invoke, _ = env
        result = invoke("run", "nope", "--yes")
        assert result.exit_code == 2
        assert "unknown fixer" in result.output

    def test_json_verdict(self, env):
        invoke, state = env
        result = invoke("run", "spooler_reset", "--json", "--no-history")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["fixer_id"] == "spooler_reset"
        assert data["status"] == "success"
        assert len(state["executor"].calls) == 3

    def test_failed_exit_code(self, env, make_executor):
        invoke, state = env
        state["executor"] = make_executor(lambda s, t, e: ExecutionOutcome(False, (), "Exit code: 1"))
        result = invoke("run", "rpc_auth_11b", "--json", "--no-history")
        assert result.exit_code == 2
        assert json.loads(result.stdout)["status"] == "failed"

    def test_cancelled_exit_code(self, env, monkeypatch):
        invoke, _ = env
        future = Future()
        future.set_result(FixResult("warning", "Cancelled by operator", (), cancelled=True))
        monkeypatch.setattr(main_mod, "start_fix", lambda *a, **kw: future)
        result = invoke("run", "spooler_reset", "--json", "--no-history")
        assert result.exit_code == 130

    def test_live_feed_and_verdict(self, env):
        invoke, _ = env
        result = invoke("run", "spooler_reset", "--yes", "--no-history")
        assert result.exit_code == 0
        assert "Print Spooler restarted and queue cleared" in result.output

    def test_declined_confirmation_runs_nothing(self, env):
        invoke, state = env
        result = invoke("run", "spooler_reset", "--no-history", input="n\n")
        assert result.exit_code == 0
        assert state["executor"].calls == []

    def test_printer_options_reach_fixer(self, env):
        invoke, state = env
        invoke("run", "module_not_found_7e", "--printer", "Bob's HP", "--json", "--no-history")
        assert any("'Bob''s HP'" in s for s in state["executor"].scripts)

    def test_remote_target_and_credentials(self, env, tmp_path):
        invoke, state = env
        result = invoke(
            "run", "rpc_auth_11b", "--remote", "PRINTSRV01",
            "--user", "CORP\\admin", "--password", "s3cret", "--json",
        )
        assert result.exit_code == 0
        target = state["executor"].calls[0][1]
        assert target.host == "PRINTSRV01"
        assert target.password == "s3cret"

        saved = list((tmp_path / "history").glob("*.json"))
        assert len(saved) == 1
        assert "s3cret" not in saved[0].read_text()

    def test_password_prompted_when_missing(self, env):
        invoke, state = env
        result = invoke(
            "run", "rpc_auth_11b", "--remote", "srv", "--user", "admin", "--no-history",
            input="pw\ny\n",
        )
        assert result.exit_code == 0
        assert state["executor"].calls[0][1].password == "pw"


class TestRunInput:
    def test_missing_input_with_yes_is_warning(self, env):
        invoke, state = env
        result = invoke("run", "driver_reinstall", "--json", "--no-history")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["summary"].startswith("Missing required parameter")
        assert state["executor"].calls == []

    def test_inf_option(self, env):
        invoke, state = env
        result = invoke("run", "driver_reinstall", "--inf", "C:\\drv\\hp.inf", "--json", "--no-history")
        assert result.exit_code == 0
        assert "'C:\\drv\\hp.inf'" in state["executor"].scripts[0]

    def test_conflicting_input_options(self, env):
        invoke, _ = env
        result = invoke("run", "driver_reinstall", "--inf", "a.inf", "--unc", "\\\\s\\p", "--yes")
        assert result.exit_code == 2

    def test_prompted_input(self, env):
        invoke, state = env
        result = invoke("run", "driver_reinstall", "--no-history", input="unc\n\\\\srv\\hp\ny\n")
        assert result.exit_code == 0
        assert "'\\\\srv\\hp'" in state["executor"].scripts[0]


# ── history ───────────────────────────────────────────────────────────────────

class TestHistory:
    def test_empty(self, env):
        invoke, _ = env
        result = invoke("history")
        assert result.exit_code == 0
        assert "No runs recorded yet" in result.output

    def test_lists_saved_runs(self, env):
        invoke, _ = env
        invoke("run", "spooler_reset", "--yes")
        result = invoke("history", "-n", "5")
        assert result.exit_code == 0
        assert "spooler_reset" in result.output
