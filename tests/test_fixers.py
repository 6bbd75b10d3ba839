"""
Tests for the concrete fixers, run against a fake executor.

Covers:
  - end-to-end scenarios: service bounce, missing input, tolerant composite
  - any failed command unit downgrades a composite fix to Warning
  - per-fixer step gating (printer / port shape / remote target)
  - per-fixer verdict policy
  - backend choice per call site and operator values quoted into scripts
"""

import asyncio
import threading

import pytest

from printfix.fixers import (
    connection,
    default_printer,
    driver,
    file_not_found,
    ipp,
    module_not_found,
    network,
    rpc_auth,
    spooler,
    spooler_memory,
)
from printfix.models import (
    ExecutionOutcome,
    FixParams,
    InputKind,
    PrinterInfo,
    RemoteTarget,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

_OK = ExecutionOutcome(True, ("[OK] done",))
_FAILED = ExecutionOutcome(False, ("[ERROR] Could not start Spooler",), "Exit code: 1")


def _apply(fixer, executor, **kwargs):
    return asyncio.run(fixer.apply(executor=executor, **kwargs))


def _failing_on(*scripts):
    """Responder that fails exactly the given scripts."""
    def responder(script, target, external):
        return _FAILED if script in scripts else _OK
    return responder


def _messages(result):
    return [e.message for e in result.steps]


def _printer(**kwargs) -> PrinterInfo:
    defaults = dict(name="HP LaserJet 400", port_name="IP_10.0.0.5", driver_name="HP Universal")
    defaults.update(kwargs)
    return PrinterInfo(**defaults)


# ── End-to-end scenarios ──────────────────────────────────────────────────────

class TestScenarios:
    def test_service_bounce_local(self, fake_executor):
        result = _apply(spooler.SpoolerFixer(), fake_executor)

        assert result.status == "success"
        assert len(fake_executor.calls) == 3
        assert len(result.steps) >= 3
        assert result.steps[0].level == "info"
        outputs = [e for e in result.steps if e.message.startswith("[")]
        assert outputs and all(e.level == "success" for e in outputs)

    def test_missing_input_issues_no_commands(self, fake_executor):
        result = _apply(driver.DriverFixer(), fake_executor)

        assert result.status == "warning"
        assert "Missing required parameter" in result.summary
        assert fake_executor.calls == []

    def test_composite_tolerates_failed_sub_step(self, make_executor):
        ex = make_executor(_failing_on(spooler._START_SCRIPT))
        result = _apply(connection.ConnectionFixer(), ex)

        # the sub-fixer's own verdict is Failed; the parent's policy tolerates it
        assert result.status == "warning"
        assert "[ERROR] Could not start Spooler" in _messages(result)


# ── Verdict aggregation across command units ──────────────────────────────────

_PARTIAL = ExecutionOutcome(False, ("[WARN] partial",), "Exit code: 1")


class TestAnyFailedUnitDowngrades:
    """A failed non-decisive unit never leaves a composite fix at Success."""

    @pytest.mark.parametrize(
        "make_fixer, script",
        [
            (connection.ConnectionFixer, connection._FIREWALL_SCRIPT),
            (file_not_found.FileNotFoundFixer, file_not_found._PRTPROCS_SCRIPT),
            (module_not_found.ModuleNotFoundFixer, module_not_found._MSCMS_SCRIPT),
            (spooler_memory.SpoolerMemoryFixer, spooler_memory._CLEANUP_SCRIPT),
            (ipp.IppFixer, ipp._CACHE_SCRIPT),
        ],
        ids=["connection", "file_not_found", "module_not_found", "spooler_memory", "ipp"],
    )
    def test_failed_unit_is_warning(self, make_executor, make_fixer, script):
        ex = make_executor(lambda s, t, e: _PARTIAL if s == script else _OK)
        result = _apply(make_fixer(), ex)

        assert result.status == "warning"
        assert not result.cancelled
        assert any(e.message == "[WARN] partial" for e in result.steps)


# ── spooler_reset ─────────────────────────────────────────────────────────────

class TestSpooler:
    def test_all_units_external(self, fake_executor):
        _apply(spooler.SpoolerFixer(), fake_executor)
        assert all(c[2] for c in fake_executor.calls)
        assert fake_executor.scripts == [spooler._STOP_SCRIPT, spooler._CLEAR_SCRIPT, spooler._START_SCRIPT]

    def test_start_failure_is_failed(self, make_executor):
        result = _apply(spooler.SpoolerFixer(), make_executor(_failing_on(spooler._START_SCRIPT)))
        assert result.status == "failed"

    def test_stop_failure_is_warning(self, make_executor):
        result = _apply(spooler.SpoolerFixer(), make_executor(_failing_on(spooler._STOP_SCRIPT)))
        assert result.status == "warning"
        assert "stop" in result.summary

    def test_remote_target_forwarded(self, fake_executor):
        remote = RemoteTarget("PRINTSRV01")
        _apply(spooler.SpoolerFixer(), fake_executor, remote=remote)
        assert all(c[1] is remote for c in fake_executor.calls)


# ── rpc_auth_11b ──────────────────────────────────────────────────────────────

class TestRpcAuth:
    def test_success_adds_tip(self, fake_executor):
        result = _apply(rpc_auth.RpcAuthFixer(), fake_executor)
        assert result.status == "success"
        assert any("client PCs" in m for m in _messages(result))
        assert fake_executor.calls[0][2] is False

    def test_failure_is_failed(self, make_executor):
        result = _apply(rpc_auth.RpcAuthFixer(), make_executor(lambda s, t, e: _FAILED))
        assert result.status == "failed"
        assert "Exit code: 1" in result.summary

    def test_registry_path_quoted(self, fake_executor):
        _apply(rpc_auth.RpcAuthFixer(), fake_executor)
        assert "$regValue = 'RpcAuthnLevelPrivacyEnabled'" in fake_executor.scripts[0]


# ── connection_4005 ───────────────────────────────────────────────────────────

class TestConnection:
    def test_reachability_only_for_unc_network_printers(self, fake_executor):
        printer = _printer(port_name="\\\\PRINTSRV01\\HP", is_network=True)
        _apply(connection.ConnectionFixer(), fake_executor, printer=printer)
        # 4 own steps + 3 spooler units + reachability
        assert len(fake_executor.calls) == 8
        assert "'\\\\PRINTSRV01\\HP'" in fake_executor.scripts[-1]

    def test_no_reachability_for_tcp_port(self, fake_executor):
        _apply(connection.ConnectionFixer(), fake_executor, printer=_printer(is_network=True))
        assert len(fake_executor.calls) == 7

    def test_failed_step_downgrades_to_warning(self, make_executor):
        ex = make_executor(_failing_on(connection._FIREWALL_SCRIPT))
        result = _apply(connection.ConnectionFixer(), ex)
        assert result.status == "warning"
        assert "1 failed" in result.summary

    def test_clean_run_is_success(self, fake_executor):
        assert _apply(connection.ConnectionFixer(), fake_executor).status == "success"


# ── file_not_found_02 ─────────────────────────────────────────────────────────

class TestFileNotFound:
    def test_session_steps_then_spooler(self, fake_executor):
        result = _apply(file_not_found.FileNotFoundFixer(), fake_executor)
        assert result.status == "success"
        assert [c[2] for c in fake_executor.calls] == [False] * 4 + [True] * 3

    def test_spooler_failure_downgrades(self, make_executor):
        ex = make_executor(_failing_on(spooler._START_SCRIPT))
        assert _apply(file_not_found.FileNotFoundFixer(), ex).status == "warning"


# ── module_not_found_7e ───────────────────────────────────────────────────────

class TestModuleNotFound:
    def test_bidi_skipped_without_printer(self, fake_executor):
        result = _apply(module_not_found.ModuleNotFoundFixer(), fake_executor)
        assert len(fake_executor.calls) == 3
        assert any("skipping BIDI" in m for m in _messages(result))

    def test_printer_name_escaped(self, fake_executor):
        _apply(module_not_found.ModuleNotFoundFixer(), fake_executor, printer=_printer(name="Bob's HP"))
        assert len(fake_executor.calls) == 4
        assert "$printerName = 'Bob''s HP'" in fake_executor.scripts[1]

    def test_final_step_failure_is_warning(self, make_executor):
        ex = make_executor(_failing_on(module_not_found._RPC_RESTART_SCRIPT))
        result = _apply(module_not_found.ModuleNotFoundFixer(), ex)
        assert result.status == "warning"

    def test_earlier_step_failure_is_warning(self, make_executor):
        ex = make_executor(_failing_on(module_not_found._MSCMS_SCRIPT))
        result = _apply(module_not_found.ModuleNotFoundFixer(), ex)
        assert result.status == "warning"
        assert "1 failed" in result.summary


# ── driver_cleanup_7b / driver_reinstall ──────────────────────────────────────

class TestDriverCleanup:
    def test_without_printer_warns_but_runs(self, fake_executor):
        result = _apply(driver.DriverCleanupFixer(), fake_executor)
        assert result.status == "success"
        assert result.steps[1].level == "warning"
        assert "$printerName = ''" in fake_executor.scripts[0]

    def test_failure_is_warning(self, make_executor):
        result = _apply(driver.DriverCleanupFixer(), make_executor(lambda s, t, e: _FAILED))
        assert result.status == "warning"


class TestDriverReinstall:
    def test_inf_without_path_warns(self, fake_executor):
        result = _apply(driver.DriverFixer(), fake_executor, params=FixParams(InputKind.INF_FILE))
        assert result.status == "warning"
        assert fake_executor.calls == []

    def test_inf_path_quoted(self, fake_executor):
        params = FixParams(InputKind.INF_FILE, "C:\\Drivers\\it's.inf")
        result = _apply(driver.DriverFixer(), fake_executor, params=params, printer=_printer())
        assert result.status == "success"
        assert "$infPath = 'C:\\Drivers\\it''s.inf'" in fake_executor.scripts[0]

    def test_unc_failure_is_failed(self, make_executor):
        params = FixParams(InputKind.UNC_PATH, "\\\\srv\\hp")
        result = _apply(driver.DriverFixer(), make_executor(lambda s, t, e: _FAILED), params=params)
        assert result.status == "failed"

    def test_auto_needs_printer(self, fake_executor):
        result = _apply(driver.DriverFixer(), fake_executor, params=FixParams(InputKind.AUTO))
        assert result.status == "warning"
        assert result.summary == "No printer selected"
        assert fake_executor.calls == []

    def test_auto_with_printer(self, fake_executor):
        result = _apply(
            driver.DriverFixer(), fake_executor, params=FixParams(InputKind.AUTO), printer=_printer(),
        )
        assert result.status == "success"
        assert "$driverName = 'HP Universal'" in fake_executor.scripts[0]

    def test_instance_reusable_across_params(self, fake_executor):
        fixer = driver.DriverFixer()
        first = _apply(fixer, fake_executor, params=FixParams(InputKind.UNC_PATH, "\\\\a\\b"))
        second = _apply(fixer, fake_executor, params=FixParams(InputKind.UNC_PATH, "\\\\c\\d"))
        assert "\\\\a\\b" in first.summary
        assert "\\\\c\\d" in second.summary


# ── spooler_memory_08 ─────────────────────────────────────────────────────────

class TestSpoolerMemory:
    def test_order_diag_spooler_cleanup(self, fake_executor):
        _apply(spooler_memory.SpoolerMemoryFixer(), fake_executor)
        scripts = fake_executor.scripts
        assert scripts[0] == spooler_memory._DIAG_SCRIPT
        assert scripts[1:4] == [spooler._STOP_SCRIPT, spooler._CLEAR_SCRIPT, spooler._START_SCRIPT]
        assert scripts[4] == spooler_memory._CLEANUP_SCRIPT

    def test_spooler_failure_downgrades(self, make_executor):
        ex = make_executor(_failing_on(spooler._START_SCRIPT))
        assert _apply(spooler_memory.SpoolerMemoryFixer(), ex).status == "warning"


# ── ipp ───────────────────────────────────────────────────────────────────────

class TestIpp:
    def test_port_step_only_for_ipp_ports(self, fake_executor):
        printer = _printer(port_name="http://10.0.0.5:631/ipp/print", is_network=True)
        _apply(ipp.IppFixer(), fake_executor, printer=printer)
        assert len(fake_executor.calls) == 5

    def test_no_port_step_for_tcp_port(self, fake_executor):
        _apply(ipp.IppFixer(), fake_executor, printer=_printer(is_network=True))
        assert len(fake_executor.calls) == 4

    def test_any_error_entry_is_warning(self, make_executor):
        def responder(script, target, external):
            if script == ipp._CACHE_SCRIPT:
                return ExecutionOutcome(True, ("[ERROR] Cache cleanup failed",))
            return _OK

        result = _apply(ipp.IppFixer(), make_executor(responder))
        assert result.status == "warning"

    def test_clean_run_is_success(self, fake_executor):
        assert _apply(ipp.IppFixer(), fake_executor).status == "success"


# ── default_printer_709 / default_printer_reset ───────────────────────────────

class TestDefaultPrinter:
    def test_709_needs_printer(self, fake_executor):
        result = _apply(default_printer.DefaultPrinter709Fixer(), fake_executor)
        assert result.status == "warning"
        assert fake_executor.calls == []

    def test_709_external_and_failed(self, make_executor):
        ex = make_executor(lambda s, t, e: _FAILED)
        result = _apply(default_printer.DefaultPrinter709Fixer(), ex, printer=_printer())
        assert result.status == "failed"
        assert ex.calls[0][2] is True

    def test_reset_without_printer(self, fake_executor):
        result = _apply(default_printer.DefaultPrinterResetFixer(), fake_executor)
        assert result.status == "success"
        assert "$newDefault = ''" in fake_executor.scripts[0]

    def test_reset_failure_is_warning(self, make_executor):
        ex = make_executor(lambda s, t, e: _FAILED)
        assert _apply(default_printer.DefaultPrinterResetFixer(), ex).status == "warning"


# ── network_diagnostics ───────────────────────────────────────────────────────

class TestExtractTarget:
    @pytest.mark.parametrize("port, server, expected", [
        ("IP_192.168.1.10", "", "192.168.1.10"),
        ("ip_10.0.0.7", "", "10.0.0.7"),
        ("\\\\PRINTSRV01\\HP400", "", "PRINTSRV01"),
        ("printer.corp.local", "", "printer.corp.local"),
        ("NPI4A2B3C", "", "NPI4A2B3C"),
        ("WSD\\abc", "SRV02", "SRV02"),
    ])
    def test_port_shapes(self, port, server, expected):
        assert network.extract_target(_printer(port_name=port, server_name=server)) == expected

    def test_no_printer(self):
        assert network.extract_target(None) is None

    def test_empty_port(self):
        assert network.extract_target(_printer(port_name="")) is None


class TestNetworkDiagnostics:
    def _patch_probes(self, monkeypatch, reachable=True, open_ports=(9100,)):
        async def fake_ping(host):
            return (True, 3.0, None) if reachable else (False, None, "no reply (exit 1)")

        async def fake_resolve(host):
            return ["10.0.0.5"]

        async def fake_port_open(host, port, timeout=1.5):
            return port in open_ports

        monkeypatch.setattr(network, "ping", fake_ping)
        monkeypatch.setattr(network, "resolve", fake_resolve)
        monkeypatch.setattr(network, "port_open", fake_port_open)

    def test_reachable_is_success(self, fake_executor, monkeypatch):
        self._patch_probes(monkeypatch)
        result = _apply(network.NetworkDiagnosticsFixer(), fake_executor, printer=_printer())

        assert result.status == "success"
        messages = _messages(result)
        assert "Ping succeeded: 3 ms" in messages
        assert "DNS: 10.0.0.5" in messages
        assert "  Port 9100 (RAW): OPEN" in messages
        assert fake_executor.calls == []

    def test_unreachable_is_warning(self, fake_executor, monkeypatch):
        self._patch_probes(monkeypatch, reachable=False)
        result = _apply(network.NetworkDiagnosticsFixer(), fake_executor, printer=_printer())
        assert result.status == "warning"
        assert any(e.level == "error" and "Ping failed" in e.message for e in result.steps)

    def test_dns_failure_is_reported(self, fake_executor, monkeypatch):
        self._patch_probes(monkeypatch)

        async def broken_resolve(host):
            raise OSError("Name or service not known")

        monkeypatch.setattr(network, "resolve", broken_resolve)
        result = _apply(network.NetworkDiagnosticsFixer(), fake_executor, printer=_printer())
        assert any(e.level == "warning" and "DNS does not resolve" in e.message for e in result.steps)

    def test_traceroute_only_with_remote(self, fake_executor, monkeypatch):
        self._patch_probes(monkeypatch)
        remote = RemoteTarget("PRINTSRV01")
        _apply(network.NetworkDiagnosticsFixer(), fake_executor, printer=_printer(), remote=remote)
        assert len(fake_executor.calls) == 1
        assert "$target = '10.0.0.5'" in fake_executor.scripts[0]
        assert fake_executor.calls[0][1] is remote

    def test_no_target_is_warning(self, fake_executor):
        result = _apply(network.NetworkDiagnosticsFixer(), fake_executor)
        assert result.status == "warning"
        assert result.summary == "No address to diagnose"

    def test_failed_traceroute_is_warning(self, make_executor, monkeypatch):
        self._patch_probes(monkeypatch)
        ex = make_executor(lambda s, t, e: _PARTIAL)
        result = _apply(
            network.NetworkDiagnosticsFixer(), ex,
            printer=_printer(), remote=RemoteTarget("PRINTSRV01"),
        )
        assert result.status == "warning"
        assert "route trace failed" in result.summary

    def test_cancel_after_probes_counts_them_as_work(self, fake_executor, monkeypatch):
        self._patch_probes(monkeypatch)
        cancel = threading.Event()

        async def resolve_then_cancel(host):
            cancel.set()
            return ["10.0.0.5"]

        monkeypatch.setattr(network, "resolve", resolve_then_cancel)
        result = _apply(network.NetworkDiagnosticsFixer(), fake_executor, printer=_printer(), cancel=cancel)

        assert result.cancelled
        assert result.summary.startswith("Cancelled by operator")
