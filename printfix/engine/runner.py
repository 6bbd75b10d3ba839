"""
Background fix runner.

Runs a fixer's apply() on a worker thread with its own event loop, so an
interactive caller (the CLI, a UI thread) stays responsive and can set the
cancel signal while the fix runs.

Runs against the same target are serialized: one lock per target key
(remote host, case-insensitive, or "localhost"). Different targets run
side by side. Locks are created on first use and kept for the life of the
process; a CLI run touches a handful of targets at most.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from printfix.models import FixParams, FixResult, PrinterInfo, RemoteTarget

logger = logging.getLogger(__name__)

_MAX_WORKERS = 4

_pool = ThreadPoolExecutor(max_workers=_MAX_WORKERS, thread_name_prefix="printfix")

_locks: dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


def target_key(remote: RemoteTarget | None) -> str:
    if remote is None or not remote.host.strip():
        return "localhost"
    return remote.host.strip().lower()


def _target_lock(key: str) -> threading.Lock:
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


def _run_locked(fixer, printer, remote, progress, cancel, params, executor) -> FixResult:
    key = target_key(remote)
    with _target_lock(key):
        logger.debug("Running %s on %s", fixer.id, key)
        return asyncio.run(
            fixer.apply(printer, remote, progress, cancel, params=params, executor=executor)
        )


# ── Public API ────────────────────────────────────────────────────────────────

def start_fix(
    fixer,
    printer: PrinterInfo | None = None,
    remote: RemoteTarget | None = None,
    progress=None,
    cancel: threading.Event | None = None,
    *,
    params: FixParams | None = None,
    executor=None,
) -> Future:
    """
    Schedule a fix on the worker pool and return its Future.

    The progress sink is called from the worker thread. The Future resolves
    to the FixResult; it only raises if the run itself was torn down.
    """
    return _pool.submit(_run_locked, fixer, printer, remote, progress, cancel, params, executor)


def run_fix(
    fixer,
    printer: PrinterInfo | None = None,
    remote: RemoteTarget | None = None,
    progress=None,
    cancel: threading.Event | None = None,
    *,
    params: FixParams | None = None,
    executor=None,
) -> FixResult:
    """Blocking form of start_fix()."""
    return start_fix(
        fixer, printer, remote, progress, cancel, params=params, executor=executor,
    ).result()
