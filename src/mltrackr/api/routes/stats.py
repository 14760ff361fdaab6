"""Statistics API endpoint.

GET /api/experiments/stats - Summary statistics over the caller's experiments
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mltrackr.aggregation.stats import get_experiment_stats
from mltrackr.api.app import get_caller_id, get_db_session
from mltrackr.db.repo import DbSession
from mltrackr.models.types import ExperimentStatsDetail, StatsOverview, TagCountDetail

router = APIRouter()


@router.get("/experiments/stats", response_model=ExperimentStatsDetail)
def get_stats(
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentStatsDetail:
    """Get summary statistics and top tags for the caller."""
    stats = get_experiment_stats(session, caller_id)

    return ExperimentStatsDetail(
        overview=StatsOverview(
            total_experiments=stats.total_experiments,
            avg_accuracy=stats.avg_accuracy,
            avg_loss=stats.avg_loss,
            max_accuracy=stats.max_accuracy,
            min_loss=stats.min_loss,
        ),
        top_tags=[TagCountDetail(tag=t.tag, count=t.count) for t in stats.top_tags],
    )
