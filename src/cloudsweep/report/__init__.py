"""Report rendering and export."""

from __future__ import annotations

from .reporter import OutcomeReporter

__all__ = ["OutcomeReporter"]
