"""
Printer network diagnostics: ping, DNS resolution, printer port probes.

Read-only. The probes run from this machine with asyncio; only the optional
traceroute goes through a backend, and only when a remote target is set.
"""

from __future__ import annotations

import asyncio
import re
import socket
import sys

from printfix.engine.executor import ps_quote
from printfix.fixers.base import BaseFixer, FixContext
from printfix.models import FixResult, PrinterInfo

PRINTER_PORTS = (9100, 515, 443, 80, 631)

_PORT_NAMES = {
    9100: "RAW",
    515:  "LPD",
    443:  "HTTPS",
    80:   "HTTP",
    631:  "IPP",
}

PING_TIMEOUT_MS = 2000
PORT_TIMEOUT = 1.5

_RTT_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)

_TRACE_SCRIPT = r"""
$target = __TARGET__
Test-NetConnection -ComputerName $target -TraceRoute |
    Select-Object -ExpandProperty TraceRoute |
    ForEach-Object { Write-Output "  Hop: $_" }
"""


def extract_target(printer: PrinterInfo | None) -> str | None:
    """
    Host or IP to probe for a printer, derived from its port name.

    IP_192.168.1.10 → 192.168.1.10 (Standard TCP/IP port)
    \\\\server\\share  → server
    anything else without a backslash, or with a dot → used as is
    otherwise → the printer's server name
    """
    if printer is None or not printer.port_name:
        return None
    port = printer.port_name

    if port.upper().startswith("IP_"):
        return port[3:] or None

    if port.startswith("\\\\"):
        parts = port.lstrip("\\").split("\\")
        return parts[0] or None

    if "." in port or "\\" not in port:
        return port

    return printer.server_name or None


# ── Probes ────────────────────────────────────────────────────────────────────

def _ping_argv(host: str) -> list[str]:
    if sys.platform == "win32":
        return ["ping", "-n", "1", "-w", str(PING_TIMEOUT_MS), host]
    return ["ping", "-c", "1", "-W", str(PING_TIMEOUT_MS // 1000), host]


async def ping(host: str) -> tuple[bool, float | None, str | None]:
    """Single echo request via the system ping. Returns (ok, rtt_ms, error)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *_ping_argv(host),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        return False, None, str(e)

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=PING_TIMEOUT_MS / 1000 + 3)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return False, None, "timed out"

    text = stdout.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        return False, None, f"no reply (exit {proc.returncode})"

    match = _RTT_RE.search(text)
    return True, float(match.group(1)) if match else None, None


async def resolve(host: str) -> list[str]:
    """Resolve a name to its distinct addresses; raises OSError on failure."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for *_, sockaddr in infos:
        if sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses


async def port_open(host: str, port: int, timeout: float = PORT_TIMEOUT) -> bool:
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


# ── Fixer ─────────────────────────────────────────────────────────────────────

class NetworkDiagnosticsFixer(BaseFixer):
    id = "network_diagnostics"
    name = "Status: network diagnostics"
    description = (
        "Checks whether the printer is reachable: ping, DNS resolution and "
        "printer ports (9100 RAW, 515 LPD, 443 HTTPS, 631 IPP). Changes nothing."
    )
    target_codes = ("network", "offline", "dns", "timeout")

    async def run(self, ctx: FixContext) -> FixResult:
        target = extract_target(ctx.printer)
        if not target:
            ctx.warn("Could not derive an IP or host name from the printer port.")
            return FixResult.warn("No address to diagnose", ctx.steps)

        ctx.info(f"Network diagnostics for: {target}")

        ctx.step("Checking ping...")
        reachable, rtt, error = await ping(target)
        ctx.mark_issued()
        if reachable:
            ctx.ok(f"Ping succeeded: {rtt:g} ms" if rtt is not None else "Ping succeeded")
        else:
            ctx.error(f"Ping failed: {error}")

        ctx.step("Resolving DNS...")
        try:
            addresses = await resolve(target)
        except OSError as e:
            ctx.warn(f"DNS does not resolve: {e}")
        else:
            ctx.ok(f"DNS: {', '.join(addresses)}")
        ctx.mark_issued()

        ctx.step(f"Checking ports: {', '.join(str(p) for p in PRINTER_PORTS)}...")
        for port in PRINTER_PORTS:
            ctx.checkpoint()
            label = _PORT_NAMES.get(port, "")
            if await port_open(target, port):
                ctx.ok(f"  Port {port} ({label}): OPEN")
            else:
                ctx.warn(f"  Port {port} ({label}): closed / unreachable")
        ctx.mark_issued()

        if ctx.remote is not None:
            ctx.step("Tracing the route (Test-NetConnection)...")
            await ctx.run(_TRACE_SCRIPT.replace("__TARGET__", ps_quote(target)))

        if reachable and ctx.all_succeeded:
            return FixResult.ok(f"Printer {target} is reachable", ctx.steps)
        if reachable:
            return FixResult.warn(f"Printer {target} is reachable; the route trace failed", ctx.steps)
        return FixResult.warn(
            f"Printer {target} does not answer ping; check the network or IP", ctx.steps,
        )
