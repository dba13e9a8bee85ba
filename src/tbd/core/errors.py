"""
Base exceptions shared across the tbd engine.

Every error raised by the engine derives from TbdError and carries enough
context (the operation being performed and, where relevant, the record id)
to diagnose a failure without re-running with verbose flags.
"""

from __future__ import annotations


class TbdError(Exception):
    """Base exception for all tbd engine failures."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        record_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.record_id = record_id

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.record_id:
            context.append(f"record={self.record_id}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class GitError(TbdError):
    """Exception raised when a git subprocess fails."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        stderr: str = "",
        *,
        operation: str | None = None,
        record_id: str | None = None,
    ) -> None:
        super().__init__(message, operation=operation, record_id=record_id)
        self.command = command
        self.stderr = stderr
