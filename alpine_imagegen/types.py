"""Shared type definitions for alpine_imagegen.

This module contains dataclasses and enums shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class StageStatus(str, Enum):
    """Status of a pipeline stage."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StageRecord:
    """Execution record for a single pipeline stage."""

    name: str
    status: StageStatus = StageStatus.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class ArtifactInfo:
    """Information about a build artifact."""

    filename: str
    path: str
    size_bytes: int
    sha256: str
    excluded_patterns: list[str] = field(default_factory=list)


__all__ = [
    "ArtifactInfo",
    "StageRecord",
    "StageStatus",
]
