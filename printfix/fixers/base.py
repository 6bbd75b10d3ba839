"""
Fixer contract and the machinery shared by every fixer.

Fixer      — the protocol a remediation procedure satisfies.
BaseFixer  — base class all concrete fixers inherit from.
FixContext — per-invocation state handed to BaseFixer.run().

A fixer holds no per-call state. Everything that belongs to one invocation
(printer, target, operator parameters, cancel signal, progress sink, the
accumulated log) lives on the FixContext built by apply().
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Protocol

from printfix.engine.classify import classify_lines
from printfix.engine.executor import Executor, get_default_executor
from printfix.exceptions import FixCancelled
from printfix.models import (
    ExecutionOutcome,
    FixParams,
    FixResult,
    InputSpec,
    LogEntry,
    PrinterInfo,
    PrinterStatus,
    RemoteTarget,
    err,
    info,
    ok,
    warn,
)

logger = logging.getLogger(__name__)

ProgressSink = Callable[[LogEntry], None]


# ── Contract ──────────────────────────────────────────────────────────────────

class Fixer(Protocol):
    id: str
    name: str
    description: str
    target_codes: tuple[str, ...]
    input_spec: InputSpec | None    # None → no operator input needed

    def matches(self, symptom: str) -> bool: ...

    async def apply(
        self,
        printer: PrinterInfo | None,
        remote: RemoteTarget | None,
        progress: ProgressSink | None = None,
        cancel: threading.Event | None = None,
        *,
        params: FixParams | None = None,
        executor: Executor | None = None,
    ) -> FixResult: ...


def code_matches(codes: Iterable[str], symptom: str) -> bool:
    """
    True if any declared code equals the symptom or is contained in it.

    Case-insensitive. Callers may pass a bare code ("spooler") or a longer
    diagnostic phrase containing one ("spooler-jam-0x8").
    """
    needle = symptom.lower()
    for code in codes:
        code = code.lower()
        if code == needle or code in needle:
            return True
    return False


# ── Per-invocation state ──────────────────────────────────────────────────────

class FixContext:
    """Everything one apply() call needs; discarded when the call returns."""

    def __init__(
        self,
        printer: PrinterInfo | None,
        remote: RemoteTarget | None,
        params: FixParams | None,
        progress: ProgressSink | None,
        cancel: threading.Event | None,
        executor: Executor,
    ) -> None:
        self.printer = printer
        self.remote = remote
        self.params = params
        self.cancel = cancel
        self.executor = executor
        self.steps: list[LogEntry] = []
        self.failures: list[str] = []
        self.commands_issued = 0
        self._progress = progress

    @property
    def target_label(self) -> str:
        return self.remote.host if self.remote is not None else "local machine"

    @property
    def all_succeeded(self) -> bool:
        """True while every command unit and delegated fix so far succeeded."""
        return not self.failures

    def partial_summary(self, prefix: str) -> str:
        """'<prefix> partially applied (N failed); check the log'."""
        return f"{prefix} partially applied ({len(self.failures)} failed); check the log"

    # ── Reporting ─────────────────────────────────────────────────────────────

    def report(self, entry: LogEntry) -> None:
        """Record an entry and hand it to the progress sink immediately."""
        self.steps.append(entry)
        if self._progress is None:
            return
        try:
            self._progress(entry)
        except Exception:
            # A broken sink must not break the fix — the entry stays in steps.
            logger.exception("Progress sink raised; continuing")

    def info(self, message: str) -> None:
        self.report(info(message))

    def ok(self, message: str) -> None:
        self.report(ok(message))

    def warn(self, message: str) -> None:
        self.report(warn(message))

    def error(self, message: str) -> None:
        self.report(err(message))

    # ── Steps ─────────────────────────────────────────────────────────────────

    def checkpoint(self) -> None:
        """Raise FixCancelled once the cancel signal is set."""
        if self.cancel is not None and self.cancel.is_set():
            raise FixCancelled()

    def step(self, title: str) -> None:
        """Start a new step: cancellation checkpoint, then announce it."""
        self.checkpoint()
        self.info(title)

    def mark_issued(self) -> None:
        """Count work done outside the executor (local probes) as issued."""
        self.commands_issued += 1

    async def run(self, script: str, *, external: bool = False) -> ExecutionOutcome:
        """
        Execute one command unit and report its classified output.

        external=True asks for the Windows PowerShell process; it is ignored
        when a remote target is set.
        """
        self.checkpoint()
        self.commands_issued += 1
        outcome = await self.executor.execute(
            script, self.remote, external=external, cancel=self.cancel,
        )
        for entry in classify_lines(outcome.output):
            self.report(entry)
        if not outcome.success:
            self.failures.append(outcome.error or "command unit failed")
        return outcome

    async def delegate(self, fixer: "Fixer", params: FixParams | None = None) -> FixResult:
        """
        Run another fixer as one step of this one.

        The sub-fixer reports live through the same sink; its log is then
        spliced into ours in its own order. A cancelled sub-fix cancels us.
        """
        self.checkpoint()
        counted = _CountingExecutor(self.executor)
        result = await fixer.apply(
            self.printer,
            self.remote,
            self._progress,
            self.cancel,
            params=params,
            executor=counted,
        )
        self.steps.extend(result.steps)
        self.commands_issued += counted.count
        if result.cancelled:
            raise FixCancelled()
        if not result.succeeded:
            self.failures.append(f"{fixer.id}: {result.summary}")
        return result


class _CountingExecutor:
    """Executor wrapper that counts the command units a sub-fix issues."""

    def __init__(self, inner: Executor) -> None:
        self.inner = inner
        self.count = 0

    async def execute(self, script, target=None, *, external=False, cancel=None):
        self.count += 1
        return await self.inner.execute(script, target, external=external, cancel=cancel)


# ── Base class ────────────────────────────────────────────────────────────────

class BaseFixer(ABC):
    """
    Abstract base class for all printfix fixers.

    Subclasses must:
      1. Set class attributes (id, name, description, target_codes)
      2. Override run() to perform the steps and return a FixResult

    run() is only called when:
      - required operator input was supplied (input_spec fixers)
      - the cancel signal was not already set

    apply() is total: whatever run() raises is turned into a verdict.
    Only asyncio.CancelledError escapes.
    """

    id: str = "base_fixer"
    name: str = "Base Fixer"
    description: str = ""
    target_codes: tuple[str, ...] = ()
    input_spec: InputSpec | None = None

    def matches(self, symptom: str) -> bool:
        return code_matches(self.target_codes, symptom)

    # ── Public API ────────────────────────────────────────────────────────────

    async def apply(
        self,
        printer: PrinterInfo | None = None,
        remote: RemoteTarget | None = None,
        progress: ProgressSink | None = None,
        cancel: threading.Event | None = None,
        *,
        params: FixParams | None = None,
        executor: Executor | None = None,
    ) -> FixResult:
        """
        Gate-check then delegate to run().

        Call this from callers — not run() directly.
        """
        ctx = FixContext(
            printer, remote, params, progress, cancel,
            executor if executor is not None else get_default_executor(),
        )
        ctx.info(f"Starting: {self.name} ({ctx.target_label})")
        if printer is not None and printer.status != PrinterStatus.UNKNOWN:
            ctx.info(f"Printer: {printer.name} ({printer.status_display})")

        try:
            if self.input_spec is not None and params is None:
                ctx.warn(f"{self.input_spec.title}: operator input is required before this fix can run.")
                return FixResult.warn(
                    f"Missing required parameter: {self.input_spec.title}", ctx.steps,
                )

            ctx.checkpoint()
            return await self.run(ctx)

        except FixCancelled:
            if ctx.commands_issued:
                summary = "Cancelled by operator — remaining steps skipped"
            else:
                summary = "Cancelled before any command ran"
            ctx.warn(summary)
            return FixResult("warning", summary, tuple(ctx.steps), cancelled=True)

        except Exception as e:
            # Safety net — one bad fixer must never crash the caller
            logger.exception("Fixer %s raised", self.id)
            message = f"Unexpected error in {self.id}: {e}"
            ctx.error(message)
            return FixResult.fail(message, ctx.steps)

    @abstractmethod
    async def run(self, ctx: FixContext) -> FixResult:
        """
        Implement the fix steps here, in order.

        Must:
        - Issue command units through ctx.run() / ctx.delegate()
        - Start each step with ctx.step() so cancellation is honoured
        - Decide the verdict; build it from ctx.steps
        """
