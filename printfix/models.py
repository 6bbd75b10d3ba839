"""
Core data model for printfix.

LogEntry        — one leveled progress message.
ExecutionOutcome — result of running one command unit through a backend.
FixResult       — the verdict every fixer returns.
PrinterInfo     — read-only descriptor of the subject printer.
RemoteTarget    — where command units run when not on this machine.
InputSpec / FixParams — the interactive-input capability and its per-call value.

This file is the single source of truth for the data shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Iterable, Literal


Level = Literal["info", "success", "warning", "error"]
FixStatus = Literal["success", "warning", "failed"]


# ── Log entries ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LogEntry:
    level: Level
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


def info(message: str) -> LogEntry:
    return LogEntry("info", message)


def ok(message: str) -> LogEntry:
    return LogEntry("success", message)


def warn(message: str) -> LogEntry:
    return LogEntry("warning", message)


def err(message: str) -> LogEntry:
    return LogEntry("error", message)


# ── Backend outcome ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExecutionOutcome:
    success: bool
    output: tuple[str, ...] = ()
    error: str | None = None

    @classmethod
    def failed(cls, error: str, output: Iterable[str] = ()) -> "ExecutionOutcome":
        """Outcome for a call the backend could not complete."""
        return cls(False, (*output, f"[EXCEPTION] {error}"), error)


# ── Verdict ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FixResult:
    status: FixStatus
    summary: str
    steps: tuple[LogEntry, ...] = ()
    cancelled: bool = False

    @classmethod
    def ok(cls, summary: str, steps: Iterable[LogEntry] = ()) -> "FixResult":
        return cls("success", summary, tuple(steps))

    @classmethod
    def warn(cls, summary: str, steps: Iterable[LogEntry] = ()) -> "FixResult":
        return cls("warning", summary, tuple(steps))

    @classmethod
    def fail(cls, summary: str, steps: Iterable[LogEntry] = ()) -> "FixResult":
        return cls("failed", summary, tuple(steps))

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


# ── Subject printer ───────────────────────────────────────────────────────────

class PrinterStatus(IntEnum):
    """Win32_Printer.PrinterStatus / ExtendedPrinterStatus values."""
    UNKNOWN = 0
    READY = 3
    PRINTING = 4
    WARMING = 5
    STOPPED = 6
    OFFLINE = 7
    PAUSED = 8
    ERROR = 9
    DELETING = 10
    PAPER_JAM = 11
    PAPER_OUT = 12
    MANUAL_FEED = 13
    PAPER_PROBLEM = 14
    NOT_AVAILABLE = 18
    USER_INTERVENTION = 19
    TONER_LOW = 20
    NO_TONER = 21


_STATUS_LABELS = {
    PrinterStatus.READY:             "Ready",
    PrinterStatus.PRINTING:          "Printing",
    PrinterStatus.OFFLINE:           "Offline",
    PrinterStatus.ERROR:             "Error",
    PrinterStatus.PAPER_JAM:         "Paper jam",
    PrinterStatus.PAPER_OUT:         "Out of paper",
    PrinterStatus.TONER_LOW:         "Toner low",
    PrinterStatus.NO_TONER:          "No toner",
    PrinterStatus.PAUSED:            "Paused",
    PrinterStatus.STOPPED:           "Stopped",
    PrinterStatus.USER_INTERVENTION: "Needs attention",
}


@dataclass(frozen=True)
class PrinterInfo:
    name: str = ""
    share_name: str = ""
    port_name: str = ""
    driver_name: str = ""
    location: str = ""
    comment: str = ""
    server_name: str = ""

    status: PrinterStatus = PrinterStatus.UNKNOWN
    is_default: bool = False
    is_network: bool = False
    is_shared: bool = False

    job_count: int = 0
    detected_error: int = 0     # Win32_Printer.DetectedErrorState
    error_codes: tuple[str, ...] = ()
    ad_path: str | None = None  # LDAP path when sourced from the directory

    @property
    def status_display(self) -> str:
        return _STATUS_LABELS.get(self.status, self.status.name.replace("_", " ").title())


# ── Execution target ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RemoteTarget:
    """A remote machine; credentials are pass-through and never persisted."""
    host: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)


# ── Interactive input ─────────────────────────────────────────────────────────

class InputKind(str, Enum):
    INF_FILE = "inf"
    UNC_PATH = "unc"
    AUTO = "auto"


@dataclass(frozen=True)
class InputSpec:
    title: str
    description: str
    kinds: tuple[InputKind, ...] = (InputKind.INF_FILE, InputKind.UNC_PATH, InputKind.AUTO)


@dataclass(frozen=True)
class FixParams:
    kind: InputKind
    path: str | None = None
