"""Expiration sweep result structure."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SweepResult:
    """Result of one expiration sweep.

    Attributes:
        cleaned: Rehydrations whose objects and record were deleted
        skipped: Records another actor changed first (compare-and-set miss)
        errors: Error messages for rehydrations left for a later sweep
    """

    cleaned: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether the sweep completed without errors."""
        return len(self.errors) == 0

    def add_error(self, error: str) -> None:
        self.errors.append(error)
