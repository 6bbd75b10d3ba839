"""
Command execution backends — one strategy per way of running PowerShell.

Each strategy:
  - Receives a script body (a command unit) and an optional cancel event
  - Runs it, capturing output lines in emission order
  - Returns an ExecutionOutcome; never raises, except FixCancelled when the
    cancel event is observed (and asyncio.CancelledError for task cancel)

Backends:
  session   — PowerShell 7 host (pwsh); a session envelope merges every
              stream in order and tags error/warning/verbose records
  external  — Windows PowerShell 5.1 (powershell.exe); needed by cmdlets
              that only ship with the Desktop edition (PrintManagement,
              CimCmdlets, DISM). Script sent via -EncodedCommand, hard timeout.
  remote    — Invoke-Command envelope addressed to the target, run through
              the session host. Credentials travel in the child's environment.

Fixers pick external per call site; a remote target always wins.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
import re
import shutil
import subprocess
import threading
import time
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from printfix.config import load_config
from printfix.exceptions import FixCancelled
from printfix.models import ExecutionOutcome, RemoteTarget

logger = logging.getLogger(__name__)


# ── Constants ─────────────────────────────────────────────────────────────────

_POLL_INTERVAL = 0.1        # seconds between cancel / deadline checks
_KILL_GRACE = 5.0           # seconds to drain pipes after kill()

_USER_ENV = "PRINTFIX_REMOTE_USER"
_PASSWORD_ENV = "PRINTFIX_REMOTE_PASSWORD"

_HOST_ARGS = ("-NoProfile", "-NonInteractive", "-ExecutionPolicy", "Bypass")

_LINE_SPLIT = re.compile(r"[\r\n]")

# Forces UTF-8 on the child's stdout so non-ASCII output survives, and keeps
# progress records (CLIXML on stderr) out of the error stream.
_EXTERNAL_PREAMBLE = (
    "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8\n"
    "$ProgressPreference = 'SilentlyContinue'\n"
)

_SESSION_ENVELOPE = r"""
[Console]::OutputEncoding = [System.Text.Encoding]::UTF8
$ProgressPreference = 'SilentlyContinue'
$ErrorActionPreference = 'Continue'
$__pfErrors = 0
$__pfFirst = $null
$__pfBody = [ScriptBlock]::Create([System.Text.Encoding]::UTF8.GetString([Convert]::FromBase64String('__PF_BODY__')))
try {
    & $__pfBody *>&1 | ForEach-Object {
        if ($_ -is [System.Management.Automation.ErrorRecord]) {
            $__pfErrors++
            if ($null -eq $__pfFirst) { $__pfFirst = "$_" }
            "[ERROR] $_"
        } elseif ($_ -is [System.Management.Automation.WarningRecord]) {
            "[WARN]  $($_.Message)"
        } elseif ($_ -is [System.Management.Automation.VerboseRecord]) {
            "[VERBOSE] $($_.Message)"
        } elseif ($_ -is [System.Management.Automation.DebugRecord]) {
        } elseif ($_ -is [System.Management.Automation.InformationRecord]) {
            "$($_.MessageData)"
        } elseif ($null -ne $_) {
            "$_"
        }
    }
} catch {
    $__pfErrors++
    if ($null -eq $__pfFirst) { $__pfFirst = "$_" }
    "[EXCEPTION] $_"
}
if ($__pfErrors -gt 0) {
    [Console]::Error.WriteLine($__pfFirst)
    exit 1
}
exit 0
"""

_REMOTE_ENVELOPE = r"""
$__pfCred = $null
if ($env:PRINTFIX_REMOTE_USER) {
    $__pfSecret = New-Object System.Security.SecureString
    if ($env:PRINTFIX_REMOTE_PASSWORD) {
        $__pfSecret = ConvertTo-SecureString $env:PRINTFIX_REMOTE_PASSWORD -AsPlainText -Force
    }
    $__pfCred = New-Object System.Management.Automation.PSCredential($env:PRINTFIX_REMOTE_USER, $__pfSecret)
}
$__pfRemote = [ScriptBlock]::Create([System.Text.Encoding]::UTF8.GetString([Convert]::FromBase64String('__PF_BODY__')))
$__pfArgs = @{ ComputerName = __PF_HOST__; ScriptBlock = $__pfRemote }
if ($__pfCred) { $__pfArgs.Credential = $__pfCred }
Invoke-Command @__pfArgs
"""


# ── Backend selection ─────────────────────────────────────────────────────────

class Backend(str, Enum):
    SESSION = "session"
    EXTERNAL = "external"
    REMOTE = "remote"


def select_backend(target: RemoteTarget | None, external: bool = False) -> Backend:
    """
    Pick the strategy for one call.

    Remote execution has no external-process form, so a target overrides
    the external preference.
    """
    if target is not None:
        return Backend.REMOTE
    return Backend.EXTERNAL if external else Backend.SESSION


class Executor(Protocol):
    async def execute(
        self,
        script: str,
        target: RemoteTarget | None = None,
        *,
        external: bool = False,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome: ...


# ── Script encoding ───────────────────────────────────────────────────────────

def ps_quote(value: str) -> str:
    """Single-quoted PowerShell literal: 'it''s'."""
    return "'" + str(value).replace("'", "''") + "'"


def encode_command(script: str) -> str:
    """Base64 of the UTF-16LE script — the form -EncodedCommand expects."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def _encode_body(script: str) -> str:
    return base64.b64encode(script.encode("utf-8")).decode("ascii")


def build_session_script(body: str) -> str:
    return _SESSION_ENVELOPE.replace("__PF_BODY__", _encode_body(body))


def build_remote_script(body: str, host: str) -> str:
    return (
        _REMOTE_ENVELOPE
        .replace("__PF_BODY__", _encode_body(body))
        .replace("__PF_HOST__", ps_quote(host))
    )


# ── Executor ──────────────────────────────────────────────────────────────────

class PowerShellExecutor:
    """
    Runs command units through one of three backends.

    Stateless between calls: executable paths are resolved per call and
    credentials are never stored on the instance.
    """

    def __init__(
        self,
        external_timeout: float = 60.0,
        session_timeout: float | None = 300.0,
        powershell_path: str | None = None,
        pwsh_path: str | None = None,
    ) -> None:
        self.external_timeout = external_timeout
        self.session_timeout = session_timeout
        self.powershell_path = powershell_path
        self.pwsh_path = pwsh_path

    @classmethod
    def from_config(cls, config: dict | None = None) -> "PowerShellExecutor":
        cfg = config if config is not None else load_config()
        return cls(
            external_timeout=cfg["external_timeout"],
            session_timeout=cfg["session_timeout"],
            powershell_path=cfg["powershell_path"],
            pwsh_path=cfg["pwsh_path"],
        )

    # ── Public API ────────────────────────────────────────────────────────────

    async def execute(
        self,
        script: str,
        target: RemoteTarget | None = None,
        *,
        external: bool = False,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        """Route one command unit to its backend."""
        backend = select_backend(target, external)
        logger.debug("Executing command unit via %s backend", backend.value)

        try:
            if backend is Backend.REMOTE:
                return await self.run_remote(script, target, cancel=cancel)
            if backend is Backend.EXTERNAL:
                return await self.run_external(script, cancel=cancel)
            return await self.run_session(script, cancel=cancel)
        except FixCancelled:
            raise
        except Exception as e:
            logger.exception("Backend %s failed unexpectedly", backend.value)
            return ExecutionOutcome.failed(str(e) or type(e).__name__)

    async def run_session(
        self,
        script: str,
        cancel: threading.Event | None = None,
        env: dict[str, str] | None = None,
    ) -> ExecutionOutcome:
        argv = [
            _pwsh(self.pwsh_path),
            *_HOST_ARGS,
            "-EncodedCommand",
            encode_command(build_session_script(script)),
        ]
        return await _run_process(
            argv,
            timeout=self.session_timeout,
            cancel=cancel,
            env=_child_env(env),
            echo_stderr=False,
        )

    async def run_external(
        self,
        script: str,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        argv = [
            _windows_powershell(self.powershell_path),
            *_HOST_ARGS,
            "-EncodedCommand",
            encode_command(_EXTERNAL_PREAMBLE + script),
        ]
        return await _run_process(
            argv,
            timeout=self.external_timeout,
            cancel=cancel,
            env=_child_env(),
            echo_stderr=True,
        )

    async def run_remote(
        self,
        script: str,
        target: RemoteTarget,
        cancel: threading.Event | None = None,
    ) -> ExecutionOutcome:
        env: dict[str, str] = {}
        if target.has_credentials:
            env[_USER_ENV] = target.username or ""
            env[_PASSWORD_ENV] = target.password or ""
        logger.debug(
            "Remote invocation on %s (credentials: %s)",
            target.host, "yes" if target.has_credentials else "no",
        )
        return await self.run_session(
            build_remote_script(script, target.host), cancel=cancel, env=env,
        )


@lru_cache(maxsize=1)
def get_default_executor() -> PowerShellExecutor:
    """Process-wide executor built from the user's config file."""
    return PowerShellExecutor.from_config()


# ── Process plumbing ──────────────────────────────────────────────────────────

async def _run_process(
    argv: list[str],
    *,
    timeout: float | None,
    cancel: threading.Event | None,
    env: dict[str, str],
    echo_stderr: bool,
) -> ExecutionOutcome:
    """Spawn argv, collect output, map exit status to an ExecutionOutcome."""
    if cancel is not None and cancel.is_set():
        raise FixCancelled()

    started = time.monotonic()
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            **_creation_kwargs(),
        )
    except OSError as e:
        logger.warning("Could not start %s: %s", argv[0], e)
        return ExecutionOutcome.failed(f"Could not start {argv[0]}: {e}")

    stdout, stderr, timed_out = await _communicate(proc, timeout, cancel)
    elapsed = time.monotonic() - started

    lines = _split_lines(stdout)
    err_text = _decode(stderr).strip()

    if timed_out:
        message = f"Timed out after {timeout:g}s"
        logger.warning("%s: %s", argv[0], message)
        return ExecutionOutcome(False, (*lines, f"[ERROR] {message}"), message)

    logger.debug("%s exited %s after %.1fs", argv[0], proc.returncode, elapsed)

    if proc.returncode != 0 or err_text:
        error = err_text or f"Exit code: {proc.returncode}"
        if echo_stderr and err_text:
            lines.append(f"[ERROR] {err_text}")
        return ExecutionOutcome(False, tuple(lines), error)

    return ExecutionOutcome(True, tuple(lines), None)


async def _communicate(
    proc: asyncio.subprocess.Process,
    timeout: float | None,
    cancel: threading.Event | None,
) -> tuple[bytes, bytes, bool]:
    """
    Wait for the process while watching the deadline and the cancel event.

    Returns (stdout, stderr, timed_out). The child is killed on timeout,
    on cancel (then FixCancelled is raised) and on task cancellation.
    """
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    comm = asyncio.ensure_future(proc.communicate())

    try:
        while True:
            wait = _POLL_INTERVAL
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - loop.time()))
            done, _ = await asyncio.wait({comm}, timeout=wait)
            if done:
                stdout, stderr = comm.result()
                return stdout or b"", stderr or b"", False
            if cancel is not None and cancel.is_set():
                await _terminate(proc, comm)
                raise FixCancelled()
            if deadline is not None and loop.time() >= deadline:
                stdout, stderr = await _terminate(proc, comm)
                return stdout, stderr, True
    except asyncio.CancelledError:
        await _terminate(proc, comm)
        raise


async def _terminate(
    proc: asyncio.subprocess.Process,
    comm: asyncio.Future,
) -> tuple[bytes, bytes]:
    """Kill the child and drain whatever it already wrote."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    try:
        stdout, stderr = await asyncio.wait_for(comm, timeout=_KILL_GRACE)
    except Exception as e:
        logger.debug("Could not drain killed process: %s", e)
        return b"", b""
    return stdout or b"", stderr or b""


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _split_lines(data: bytes) -> list[str]:
    return [ln for ln in _LINE_SPLIT.split(_decode(data)) if ln]


def _child_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    """Inherited environment minus any stale credentials, plus extra."""
    env = {k: v for k, v in os.environ.items() if k not in (_USER_ENV, _PASSWORD_ENV)}
    if extra:
        env.update(extra)
    return env


def _creation_kwargs() -> dict:
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def _windows_powershell(configured: str | None) -> str:
    if configured:
        return configured
    root = os.environ.get("SystemRoot") or os.environ.get("windir")
    if root:
        candidate = Path(root) / "System32" / "WindowsPowerShell" / "v1.0" / "powershell.exe"
        if candidate.is_file():
            return str(candidate)
    return shutil.which("powershell.exe") or shutil.which("powershell") or "powershell.exe"


def _pwsh(configured: str | None) -> str:
    if configured:
        return configured
    return shutil.which("pwsh") or shutil.which("pwsh.exe") or "pwsh"
