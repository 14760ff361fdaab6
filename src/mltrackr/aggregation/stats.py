"""Experiment statistics aggregation.

Computes count, accuracy/loss aggregates and tag frequencies over a
user's active experiments. Recomputed on every call.
Domain logic is pure - database operations go through repo.
"""

from __future__ import annotations

from mltrackr.db import repo
from mltrackr.db.repo import DbSession
from mltrackr.models.domain import ExperimentStats, TagCount


def get_experiment_stats(session: DbSession, caller_id: str) -> ExperimentStats:
    """Compute summary statistics for a user's active experiments.

    Args:
        session: Database session.
        caller_id: User whose experiments are summarized.

    Returns:
        ExperimentStats; numeric aggregates are 0 when there are no
        experiments.
    """
    with repo.store_errors(session):
        aggregates = repo.get_metric_aggregates(session, caller_id)
        top_tags = repo.get_tag_counts(session, caller_id)

    return _build_stats(aggregates, top_tags)


def _build_stats(
    aggregates: tuple[int, float | None, float | None, float | None, float | None],
    top_tags: list[TagCount],
) -> ExperimentStats:
    """Fill in zero defaults for an empty result.

    Pure function - no database access.
    """
    total, avg_accuracy, avg_loss, max_accuracy, min_loss = aggregates

    return ExperimentStats(
        total_experiments=total or 0,
        avg_accuracy=float(avg_accuracy or 0.0),
        avg_loss=float(avg_loss or 0.0),
        max_accuracy=float(max_accuracy or 0.0),
        min_loss=float(min_loss or 0.0),
        top_tags=top_tags,
    )
