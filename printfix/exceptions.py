"""Exceptions raised across the execution engine."""


class PrintFixError(Exception):
    """Base class for printfix errors."""


class FixCancelled(PrintFixError):
    """The cancellation signal was observed; no further step may start."""

    def __init__(self, message: str = "Cancelled by operator") -> None:
        super().__init__(message)
