"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Referenced workflow, task, stage, user or notification does not exist."""

    def __init__(self, message: str, *, code: str = "NOT_FOUND", details: dict[str, Any] | None = None):
        super().__init__(code=code, http_status=404, message=message, details=details)


class PermissionDeniedError(DomainError):
    def __init__(self, message: str, *, code: str = "PERMISSION_DENIED", details: dict[str, Any] | None = None):
        super().__init__(code=code, http_status=403, message=message, details=details)


class InvalidTransitionError(DomainError):
    """Stage move rejected; ``message`` carries the validator's reason."""

    def __init__(self, message: str, *, code: str = "INVALID_TRANSITION", details: dict[str, Any] | None = None):
        super().__init__(code=code, http_status=400, message=message, details=details)


class InvariantViolationError(DomainError):
    def __init__(
        self,
        message: str,
        *,
        code: str = "INVARIANT_VIOLATION",
        http_status: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, http_status=http_status, message=message, details=details)


class DuplicateNameError(DomainError):
    def __init__(self, message: str, *, code: str = "WORKFLOW_NAME_TAKEN", details: dict[str, Any] | None = None):
        super().__init__(code=code, http_status=409, message=message, details=details)


class ConcurrentModificationError(DomainError):
    def __init__(self, message: str = "Task was modified concurrently, reload and retry"):
        super().__init__(code="CONCURRENT_MODIFICATION", http_status=409, message=message)
