"""
Tests for engine/runner.py.

Covers:
  - run_fix / start_fix return the fixer's verdict
  - target keys
  - runs on the same target are serialized; different targets overlap
  - the cancel signal set from the calling thread reaches the worker
"""

import asyncio
import threading
import time

from printfix.engine.runner import run_fix, start_fix, target_key
from printfix.fixers.base import BaseFixer, FixContext
from printfix.fixers.spooler import SpoolerFixer
from printfix.models import FixResult, RemoteTarget


# ── Helpers ───────────────────────────────────────────────────────────────────

class _Tracker:
    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def leave(self):
        with self.lock:
            self.active -= 1


class _Sleepy(BaseFixer):
    id = "sleepy"
    name = "Sleepy"

    def __init__(self, tracker):
        self.tracker = tracker

    async def run(self, ctx: FixContext) -> FixResult:
        self.tracker.enter()
        try:
            await asyncio.sleep(0.2)
        finally:
            self.tracker.leave()
        return FixResult.ok("slept", ctx.steps)


class _WaitsFor(BaseFixer):
    """Succeeds only if `event` is set by someone else within 2 s."""
    id = "waits_for"
    name = "Waits For"

    def __init__(self, event):
        self.event = event

    async def run(self, ctx: FixContext) -> FixResult:
        for _ in range(40):
            if self.event.is_set():
                return FixResult.ok("saw it", ctx.steps)
            await asyncio.sleep(0.05)
        return FixResult.warn("never saw it", ctx.steps)


class _Setter(BaseFixer):
    id = "setter"
    name = "Setter"

    def __init__(self, event):
        self.event = event

    async def run(self, ctx: FixContext) -> FixResult:
        self.event.set()
        return FixResult.ok("set", ctx.steps)


class _UntilCancelled(BaseFixer):
    id = "until_cancelled"
    name = "Until Cancelled"

    async def run(self, ctx: FixContext) -> FixResult:
        for _ in range(100):
            ctx.checkpoint()
            await asyncio.sleep(0.02)
        return FixResult.ok("ran to the end", ctx.steps)


# ── Tests ─────────────────────────────────────────────────────────────────────

class TestTargetKey:
    def test_local(self):
        assert target_key(None) == "localhost"

    def test_remote_case_insensitive(self):
        assert target_key(RemoteTarget("PrintSrv01")) == target_key(RemoteTarget("printsrv01 "))

    def test_blank_host_is_local(self):
        assert target_key(RemoteTarget("  ")) == "localhost"


class TestRunFix:
    def test_returns_verdict(self, fake_executor):
        result = run_fix(SpoolerFixer(), executor=fake_executor)
        assert result.status == "success"
        assert len(fake_executor.calls) == 3

    def test_start_fix_future(self, fake_executor):
        seen = []
        future = start_fix(SpoolerFixer(), None, None, seen.append, executor=fake_executor)
        result = future.result(timeout=5)
        assert result.succeeded
        assert seen == list(result.steps)


class TestSerialization:
    def test_same_target_never_overlaps(self):
        tracker = _Tracker()
        futures = [start_fix(_Sleepy(tracker), remote=RemoteTarget("SRV")) for _ in range(3)]
        for f in futures:
            assert f.result(timeout=5).succeeded
        assert tracker.peak == 1

    def test_different_targets_overlap(self):
        event = threading.Event()
        waiting = start_fix(_WaitsFor(event), remote=RemoteTarget("SRV-A"))
        time.sleep(0.05)
        start_fix(_Setter(event), remote=RemoteTarget("SRV-B")).result(timeout=5)
        assert waiting.result(timeout=5).summary == "saw it"


class TestCancel:
    def test_cancel_from_caller_thread(self):
        cancel = threading.Event()
        future = start_fix(_UntilCancelled(), cancel=cancel)
        time.sleep(0.1)
        cancel.set()
        result = future.result(timeout=5)
        assert result.cancelled
        assert result.status == "warning"
