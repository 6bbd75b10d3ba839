"""
printfix — entry point.

CLI commands, fixer lookup, background run with live feed, verdict output.
"""

import concurrent.futures
import json
import logging
import threading
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from printfix import __version__
from printfix.config import load_config
from printfix.engine.executor import PowerShellExecutor
from printfix.engine.runner import start_fix
from printfix.fixers.registry import default_registry
from printfix.models import PrinterInfo, RemoteTarget
from printfix.ui.theme import COLOR_BRAND, COLOR_DIM, PRINTFIX_THEME, STATUS_COLORS

logger = logging.getLogger(__name__)

# ── Console (shared across the tool) ─────────────────────────────────────────

console = Console(theme=PRINTFIX_THEME)

# ── Exit codes ────────────────────────────────────────────────────────────────

EXIT_OK = 0
EXIT_FAILED = 2
EXIT_CANCELLED = 130

_WAIT_SLICE = 0.2   # seconds; keeps the main thread responsive to Ctrl-C


# ── Logging ───────────────────────────────────────────────────────────────────

def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


# ── CLI ───────────────────────────────────────────────────────────────────────

@click.group(name="printfix", context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version", prog_name="printfix")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Debug logging to stderr.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/printfix/config.toml).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Optional[Path]) -> None:
    """Windows printer remediation.

    Diagnose and fix common printing errors on this machine or a remote one.
    Run `printfix list` to see every fixer.

    \b
    Exit codes:
      0    success or warning
      2    fix failed
      130  cancelled by the operator
    """
    _configure_logging(verbose)
    ctx.obj = {"config": load_config(config_path)}


# ── list ──────────────────────────────────────────────────────────────────────

@cli.command(name="list")
@click.option("--code", metavar="SYMPTOM", default=None, help="Only fixers matching this error code or keyword.")
def list_fixers(code: Optional[str]) -> None:
    """List available fixers."""
    registry = default_registry()
    fixers = registry.by_code(code) if code else registry.all()

    if not fixers:
        console.print(f"  No fixer matches '{code}'.", style=COLOR_DIM)
        return

    table = Table(border_style=COLOR_DIM, header_style=f"bold {COLOR_BRAND}")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Codes", style=COLOR_DIM)
    table.add_column("Input", justify="center")

    for fixer in fixers:
        table.add_row(
            fixer.id,
            fixer.name,
            ", ".join(fixer.target_codes),
            "yes" if registry.input_spec(fixer.id) is not None else "",
        )
    console.print(table)


# ── run ───────────────────────────────────────────────────────────────────────

@cli.command(name="run")
@click.argument("fixer_id")
# Subject printer
@click.option("--printer", "printer_name", default=None, help="Printer name.")
@click.option("--port", default="", help="Printer port name (IP_10.0.0.5, \\\\server\\share, http://…).")
@click.option("--driver", default="", help="Printer driver name.")
@click.option("--server", default="", help="Print server name.")
@click.option("--network", is_flag=True, default=False, help="The printer is a network printer.")
# Target
@click.option("--remote", "remote_host", default=None, metavar="HOST", help="Run on a remote machine.")
@click.option("--user", default=None, help="Remote user (DOMAIN\\user).")
@click.option("--password", default=None, help="Remote password (prompted when --user is given).")
# Operator input
@click.option("--inf", default=None, metavar="PATH", help="Driver INF file (driver_reinstall).")
@click.option("--unc", default=None, metavar="PATH", help="Shared printer UNC path (driver_reinstall).")
@click.option("--auto-driver", is_flag=True, default=False, help="Reinstall from DriverStore (driver_reinstall).")
# Behaviour
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation or input.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the verdict as JSON.")
@click.option("--no-history", is_flag=True, default=False, help="Do not record this run.")
@click.pass_obj
def run_command(
    obj: dict,
    fixer_id: str,
    printer_name: Optional[str],
    port: str,
    driver: str,
    server: str,
    network: bool,
    remote_host: Optional[str],
    user: Optional[str],
    password: Optional[str],
    inf: Optional[str],
    unc: Optional[str],
    auto_driver: bool,
    yes: bool,
    as_json: bool,
    no_history: bool,
) -> None:
    """Run one fixer by id."""
    from printfix.ui.prompts import params_from_options, prompt_params

    config = obj["config"]
    registry = default_registry()
    try:
        fixer = registry.get(fixer_id)
    except KeyError:
        raise click.BadParameter(f"unknown fixer '{fixer_id}' (see `printfix list`)", param_hint="FIXER_ID") from None

    printer = _build_printer(printer_name, port, driver, server, network)

    remote = None
    if remote_host:
        if user and password is None and not yes:
            password = click.prompt(f"Password for {user}@{remote_host}", hide_input=True)
        remote = RemoteTarget(remote_host, user, password)

    # ── Operator input ────────────────────────────────────────────────────────
    params = params_from_options(inf, unc, auto_driver)
    spec = registry.input_spec(fixer.id)
    if spec is not None and params is None and not yes and not as_json:
        params = prompt_params(spec, console)

    # ── Confirmation ──────────────────────────────────────────────────────────
    target_label = remote.host if remote is not None else "this machine"
    if not yes and not as_json:
        if not click.confirm(f"Run '{fixer.name}' on {target_label}?", default=True):
            console.print("  Cancelled.", style=COLOR_DIM)
            return

    executor = PowerShellExecutor.from_config(config)
    cancel = threading.Event()

    # ── Run ───────────────────────────────────────────────────────────────────
    if as_json:
        result = _wait(start_fix(fixer, printer, remote, None, cancel, params=params, executor=executor), cancel)
    else:
        from printfix.ui.feed import FixFeed, print_verdict
        console.print()
        with FixFeed(console, fixer.name) as feed:
            future = start_fix(fixer, printer, remote, feed.print_entry, cancel, params=params, executor=executor)
            result = _wait(future, cancel, on_cancel=feed.mark_cancelling)
        print_verdict(console, result, fixer.name)

    if not no_history:
        from printfix.history import save_run
        save_run(fixer.id, result, printer, remote, limit=config["history_limit"])

    if as_json:
        from printfix.history import build_payload
        click.echo(json.dumps(build_payload(fixer.id, result, printer, remote), indent=2))

    if result.cancelled:
        raise SystemExit(EXIT_CANCELLED)
    if result.status == "failed":
        raise SystemExit(EXIT_FAILED)


# ── history ───────────────────────────────────────────────────────────────────

@cli.command(name="history")
@click.option("-n", "count", type=click.IntRange(min=1), default=10, show_default=True, help="Runs to show.")
def history_command(count: int) -> None:
    """Show recent fix verdicts."""
    from printfix.history import load_recent

    runs = load_recent(count)
    if not runs:
        console.print("  No runs recorded yet.", style=COLOR_DIM)
        return

    table = Table(border_style=COLOR_DIM, header_style=f"bold {COLOR_BRAND}")
    table.add_column("When", no_wrap=True, style=COLOR_DIM)
    table.add_column("Fixer", no_wrap=True)
    table.add_column("Target")
    table.add_column("Status", no_wrap=True)
    table.add_column("Summary")

    for run in runs:
        status = run.get("status", "?")
        label = "cancelled" if run.get("cancelled") else status
        table.add_row(
            str(run.get("run_time", ""))[:19].replace("T", " "),
            str(run.get("fixer_id", "")),
            str(run.get("target", "")),
            f"[{STATUS_COLORS.get(status, COLOR_DIM)}]{label}[/]",
            str(run.get("summary", "")),
        )
    console.print(table)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _build_printer(
    name: Optional[str], port: str, driver: str, server: str, network: bool,
) -> Optional[PrinterInfo]:
    """PrinterInfo from command-line options; None when no printer was named."""
    if not name:
        return None
    return PrinterInfo(
        name=name,
        port_name=port,
        driver_name=driver,
        server_name=server,
        is_network=network or port.startswith(("\\\\", "http", "ipp")),
    )


def _wait(future: concurrent.futures.Future, cancel: threading.Event, on_cancel=None):
    """
    Block until the fix finishes; Ctrl-C sets the cancel signal.

    A second Ctrl-C while cancelling keeps waiting: the worker kills the
    running command unit and returns a cancelled verdict shortly.
    """
    while True:
        try:
            return future.result(timeout=_WAIT_SLICE)
        except concurrent.futures.TimeoutError:
            continue
        except KeyboardInterrupt:
            if not cancel.is_set():
                logger.debug("Cancel requested by operator")
                cancel.set()
                if on_cancel is not None:
                    on_cancel()
