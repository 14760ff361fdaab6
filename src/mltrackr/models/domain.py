"""Domain models for MLTrackr.

Pure Python dataclasses representing domain entities.
These models are independent of SQLAlchemy and used throughout
the application for clean separation from the database layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


# ============================================================================
# Experiment Domain
# ============================================================================


@dataclass(frozen=True)
class VersionEntity:
    """Immutable snapshot of an experiment before one of its updates."""

    model_name: str
    accuracy: float
    loss: float
    notes: str
    captured_at: datetime


@dataclass
class ExperimentEntity:
    """Domain model for an experiment record."""

    experiment_id: str
    owner_id: str
    model_name: str
    accuracy: float
    loss: float
    notes: str
    tags: list[str]
    versions: list[VersionEntity]
    is_active: bool
    created_at: datetime
    updated_at: datetime
    revision: int = 1


@dataclass
class ExperimentInput:
    """Fields supplied when creating an experiment."""

    model_name: str | None
    accuracy: float | None
    loss: float | None
    notes: str | None = None
    tags: list[str] | None = None


@dataclass
class ExperimentPatch:
    """Partial update; a field left as None keeps its current value."""

    model_name: str | None = None
    accuracy: float | None = None
    loss: float | None = None
    notes: str | None = None
    tags: list[str] | None = None


# ============================================================================
# Query Domain
# ============================================================================

SortField = Literal["created_at", "accuracy", "loss", "model_name"]
SortOrder = Literal["asc", "desc"]

SORT_FIELDS: tuple[str, ...] = ("created_at", "accuracy", "loss", "model_name")
SORT_ORDERS: tuple[str, ...] = ("asc", "desc")


@dataclass
class ListOptions:
    """Search, filter, sort, and paging options for listing experiments."""

    search: str | None = None
    tags: list[str] = field(default_factory=list)
    min_accuracy: float | None = None
    max_accuracy: float | None = None
    sort_by: SortField = "created_at"
    sort_order: SortOrder = "desc"
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ExperimentPage:
    """One page of experiments plus pagination metadata."""

    items: list[ExperimentEntity]
    page: int
    limit: int
    total: int
    pages: int


# ============================================================================
# Statistics Domain
# ============================================================================


@dataclass
class TagCount:
    """How many of a user's experiments carry a tag."""

    tag: str
    count: int


@dataclass
class ExperimentStats:
    """Summary statistics over a user's active experiments."""

    total_experiments: int
    avg_accuracy: float
    avg_loss: float
    max_accuracy: float
    min_loss: float
    top_tags: list[TagCount]
