"""Pydantic models for the MLTrackr API.

Request bodies forbid unknown keys; range checks live in the tracking
layer so they apply equally to scripts and HTTP callers.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Strict

# Booleans and numeric strings are not numbers here
Metric = Annotated[float, Strict()]


class ExperimentCreate(BaseModel):
    """Body for creating an experiment."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_name: str
    accuracy: Metric
    loss: Metric
    notes: str | None = None
    tags: list[str] | None = None


class ExperimentUpdate(BaseModel):
    """Partial update body; omitted or null fields are left unchanged."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_name: str | None = None
    accuracy: Metric | None = None
    loss: Metric | None = None
    notes: str | None = None
    tags: list[str] | None = None


class VersionDetail(BaseModel):
    """Historical version for API response."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str
    accuracy: float
    loss: float
    notes: str
    captured_at: datetime


class ExperimentDetail(BaseModel):
    """Experiment details for API response."""

    model_config = ConfigDict(protected_namespaces=())

    experiment_id: str
    owner_id: str
    model_name: str
    accuracy: float
    loss: float
    notes: str
    tags: list[str]
    versions: list[VersionDetail]
    created_at: datetime
    updated_at: datetime


class PaginationInfo(BaseModel):
    """Pagination metadata for list responses."""

    page: int
    limit: int
    total: int
    pages: int


class ExperimentList(BaseModel):
    """Page of experiments for API response."""

    data: list[ExperimentDetail]
    pagination: PaginationInfo


class StatsOverview(BaseModel):
    """Aggregate metrics over a user's experiments."""

    total_experiments: int
    avg_accuracy: float
    avg_loss: float
    max_accuracy: float
    min_loss: float


class TagCountDetail(BaseModel):
    """Tag frequency entry."""

    tag: str
    count: int


class ExperimentStatsDetail(BaseModel):
    """Statistics payload for API response."""

    overview: StatsOverview
    top_tags: list[TagCountDetail]
