"""
Run history — an audit trail of fix verdicts.

Stores one JSON file per run in ~/.config/printfix/history/.
Keeps the newest `history_limit` files and prunes older ones automatically.
Credentials are never written.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from printfix import __version__
from printfix.models import FixResult, PrinterInfo, RemoteTarget


# ── Constants ────────────────────────────────────────────────────────────────

_HISTORY_DIR = Path.home() / ".config" / "printfix" / "history"
_MAX_RUNS = 50


# ── Public API ───────────────────────────────────────────────────────────────

def save_run(
    fixer_id: str,
    result: FixResult,
    printer: Optional[PrinterInfo] = None,
    remote: Optional[RemoteTarget] = None,
    limit: int = _MAX_RUNS,
) -> Optional[Path]:
    """
    Persist one verdict to the history directory.

    Returns the path of the written file, or None on failure.
    """
    payload = build_payload(fixer_id, result, printer, remote)
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
    path = _HISTORY_DIR / f"{ts}_{fixer_id}.json"

    try:
        _HISTORY_DIR.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2))
    except OSError:
        return None

    prune_history(limit)
    return path


def load_recent(n: int = 10) -> list[dict]:
    """
    Return up to n parsed runs, newest first.

    Unreadable or corrupt files are skipped.
    """
    try:
        files = sorted(_HISTORY_DIR.glob("*.json"), reverse=True)
    except OSError:
        return []

    runs: list[dict] = []
    for f in files:
        if len(runs) >= n:
            break
        try:
            runs.append(json.loads(f.read_text()))
        except (json.JSONDecodeError, OSError):
            continue
    return runs


def prune_history(limit: int = _MAX_RUNS) -> None:
    """Keep only the newest `limit` history files, delete the rest."""
    try:
        files = sorted(_HISTORY_DIR.glob("*.json"))
    except OSError:
        return

    for old in files[:-limit] if limit > 0 else files:
        try:
            old.unlink()
        except OSError:
            pass


# ── Internal ─────────────────────────────────────────────────────────────────

def build_payload(
    fixer_id: str,
    result: FixResult,
    printer: Optional[PrinterInfo] = None,
    remote: Optional[RemoteTarget] = None,
) -> dict:
    return {
        "schema_version": 1,
        "printfix_version": __version__,
        "run_time": datetime.now(timezone.utc).isoformat(),
        "fixer_id": fixer_id,
        "target": remote.host if remote is not None else "localhost",
        "printer": printer.name if printer is not None else None,
        "status": result.status,
        "summary": result.summary,
        "cancelled": result.cancelled,
        "steps": [
            {
                "level": e.level,
                "message": e.message,
                "timestamp": e.timestamp.isoformat(),
            }
            for e in result.steps
        ],
    }
