"""Locate, invoke, poll and evaluate network injection policy linkage."""

from __future__ import annotations

from .locator import PolicyResourceLocator
from .matrix import ConflictResolution, FallbackMatrixRunner
from .orchestrator import LinkageOrchestrator, LinkageSnapshot, RunState

__all__ = [
    "ConflictResolution",
    "FallbackMatrixRunner",
    "LinkageOrchestrator",
    "LinkageSnapshot",
    "PolicyResourceLocator",
    "RunState",
]
