"""
Operation results with non-fatal warnings.

Operations with best-effort side effects (notification emails) return the
primary outcome together with a list of warnings, so a failed send never
turns a successful mutation into an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class OperationResult(Generic[T]):
    value: T
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str | None) -> None:
        """Record a warning; `None` means the side effect succeeded."""
        if message:
            self.warnings.append(message)

    @property
    def ok(self) -> bool:
        """True when every side effect succeeded too."""
        return not self.warnings
