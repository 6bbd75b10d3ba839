"""
Fixer catalogue.

Every known fixer is instantiated once, in display order, when the
registry is built. Lookups never construct anything.
"""

from __future__ import annotations

from functools import lru_cache
from types import MappingProxyType

from printfix.fixers.base import Fixer
from printfix.fixers.connection import ConnectionFixer
from printfix.fixers.default_printer import DefaultPrinter709Fixer, DefaultPrinterResetFixer
from printfix.fixers.driver import DriverCleanupFixer, DriverFixer
from printfix.fixers.file_not_found import FileNotFoundFixer
from printfix.fixers.ipp import IppFixer
from printfix.fixers.module_not_found import ModuleNotFoundFixer
from printfix.fixers.network import NetworkDiagnosticsFixer
from printfix.fixers.rpc_auth import RpcAuthFixer
from printfix.fixers.spooler import SpoolerFixer
from printfix.fixers.spooler_memory import SpoolerMemoryFixer
from printfix.models import InputSpec


# Display order
ALL_FIXER_CLASSES = (
    SpoolerFixer,
    RpcAuthFixer,
    ConnectionFixer,
    DefaultPrinter709Fixer,
    FileNotFoundFixer,
    ModuleNotFoundFixer,
    DriverCleanupFixer,
    SpoolerMemoryFixer,
    IppFixer,
    NetworkDiagnosticsFixer,
    DriverFixer,
    DefaultPrinterResetFixer,
)


class FixerRegistry:
    """Read-only catalogue of fixer instances."""

    def __init__(self, fixers: tuple[Fixer, ...] | None = None) -> None:
        if fixers is None:
            fixers = tuple(cls() for cls in ALL_FIXER_CLASSES)
        self._fixers = tuple(fixers)

        by_id: dict[str, Fixer] = {}
        for fixer in self._fixers:
            if fixer.id in by_id:
                raise ValueError(f"Duplicate fixer id: {fixer.id}")
            by_id[fixer.id] = fixer
        self._by_id = MappingProxyType(by_id)
        self._input_specs = MappingProxyType({f.id: f.input_spec for f in self._fixers})

    def all(self) -> tuple[Fixer, ...]:
        return self._fixers

    def by_code(self, symptom: str) -> tuple[Fixer, ...]:
        """Fixers whose declared codes match the symptom, in registry order."""
        return tuple(f for f in self._fixers if f.matches(symptom))

    def get(self, fixer_id: str) -> Fixer:
        """Fixer by id; KeyError when unknown."""
        try:
            return self._by_id[fixer_id]
        except KeyError:
            raise KeyError(f"Unknown fixer: {fixer_id}") from None

    def input_spec(self, fixer_id: str) -> InputSpec | None:
        """Operator input the fixer needs before it can run, or None."""
        self.get(fixer_id)
        return self._input_specs[fixer_id]

    def __len__(self) -> int:
        return len(self._fixers)

    def __iter__(self):
        return iter(self._fixers)


@lru_cache(maxsize=1)
def default_registry() -> FixerRegistry:
    return FixerRegistry()
