"""Labeling collaborator interface.

Category/label enrichment is provided by an external service; the engine
only needs ``label(name) -> LabelResult``.  ``NullLabeler`` is the default
and always reports insufficient data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class LabelResult:
    status: str  # success | insufficient_data
    category: str | None = None
    label: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


@runtime_checkable
class Labeler(Protocol):
    def label(self, name: str) -> LabelResult: ...


class NullLabeler:
    """Labeler used when no enrichment service is wired in."""

    def label(self, name: str) -> LabelResult:
        return LabelResult(status="insufficient_data", reason="Labeling service not configured")
