"""
Shared pytest fixtures.
"""
import pytest

from printfix.engine import executor
from printfix.fixers import registry
from printfix.models import ExecutionOutcome


class FakeExecutor:
    """
    Records every command unit and answers from a responder.

    responder(script, target, external) -> ExecutionOutcome; the default
    answers every call with one [OK] line.
    """

    def __init__(self, responder=None):
        self.calls: list[tuple[str, object, bool]] = []
        self.responder = responder or (lambda script, target, external: ExecutionOutcome(True, ("[OK] done",)))

    async def execute(self, script, target=None, *, external=False, cancel=None):
        self.calls.append((script, target, external))
        return self.responder(script, target, external)

    @property
    def scripts(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def make_executor():
    return FakeExecutor


@pytest.fixture(autouse=True)
def clear_lru_caches():
    """Prevent lru_cache state from leaking between tests."""
    yield
    registry.default_registry.cache_clear()
    executor.get_default_executor.cache_clear()
