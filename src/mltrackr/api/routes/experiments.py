"""Experiments API endpoints.

GET    /api/experiments                  - List experiments (search, filter, page)
POST   /api/experiments                  - Create experiment
GET    /api/experiments/compare?ids=a,b  - Fetch experiments for comparison
GET    /api/experiments/{experiment_id}  - Get experiment with history
PUT    /api/experiments/{experiment_id}  - Update experiment (appends a version)
DELETE /api/experiments/{experiment_id}  - Soft-delete experiment
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from mltrackr.api.app import get_caller_id, get_db_session
from mltrackr.core.errors import ConcurrentUpdateError, NotFoundError, ValidationError
from mltrackr.db.repo import DbSession
from mltrackr.models.domain import ExperimentEntity, ExperimentInput, ExperimentPatch
from mltrackr.models.types import (
    ExperimentCreate,
    ExperimentDetail,
    ExperimentList,
    ExperimentUpdate,
    PaginationInfo,
    VersionDetail,
)
from mltrackr.tracking import experiments as tracking

router = APIRouter()


class ExperimentDeletedResponse(BaseModel):
    """Response for experiment deletion."""

    experiment_id: str
    deleted: bool


def build_experiment_detail(experiment: ExperimentEntity) -> ExperimentDetail:
    """Build ExperimentDetail from ExperimentEntity."""
    return ExperimentDetail(
        experiment_id=experiment.experiment_id,
        owner_id=experiment.owner_id,
        model_name=experiment.model_name,
        accuracy=experiment.accuracy,
        loss=experiment.loss,
        notes=experiment.notes,
        tags=list(experiment.tags),
        versions=[
            VersionDetail(
                model_name=v.model_name,
                accuracy=v.accuracy,
                loss=v.loss,
                notes=v.notes,
                captured_at=v.captured_at,
            )
            for v in experiment.versions
        ],
        created_at=experiment.created_at,
        updated_at=experiment.updated_at,
    )


@router.get("/experiments", response_model=ExperimentList)
def list_experiments(
    search: str | None = None,
    tags: str | None = Query(default=None, description="Comma-separated tags"),
    min_accuracy: float | None = None,
    max_accuracy: float | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int = 1,
    limit: int = 10,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentList:
    """List the caller's experiments.

    Raises:
        HTTPException: 400 if filter, sort, or paging parameters are invalid.
    """
    try:
        options = tracking.build_list_options(
            search=search,
            tags=tags,
            min_accuracy=min_accuracy,
            max_accuracy=max_accuracy,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message) from e

    result = tracking.list_experiments(session, caller_id, options)

    return ExperimentList(
        data=[build_experiment_detail(e) for e in result.items],
        pagination=PaginationInfo(
            page=result.page,
            limit=result.limit,
            total=result.total,
            pages=result.pages,
        ),
    )


@router.post("/experiments", response_model=ExperimentDetail, status_code=201)
def create_experiment(
    body: ExperimentCreate,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentDetail:
    """Create an experiment owned by the caller.

    Raises:
        HTTPException: 400 if a field is missing or out of range,
            409 if the generated id collides with a stored one.
    """
    data = ExperimentInput(
        model_name=body.model_name,
        accuracy=body.accuracy,
        loss=body.loss,
        notes=body.notes,
        tags=body.tags,
    )

    try:
        experiment = tracking.create_experiment(session, caller_id, data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=e.message) from e

    return build_experiment_detail(experiment)


@router.get("/experiments/compare", response_model=list[ExperimentDetail])
def compare_experiments(
    ids: str | None = None,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> list[ExperimentDetail]:
    """Get several of the caller's experiments for comparison.

    Unknown or foreign ids are left out of the result.

    Raises:
        HTTPException: 400 if no ids are given.
    """
    try:
        experiments = tracking.get_experiments_for_comparison(session, caller_id, ids)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message) from e

    return [build_experiment_detail(e) for e in experiments]


@router.get("/experiments/{experiment_id}", response_model=ExperimentDetail)
def get_experiment(
    experiment_id: str,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentDetail:
    """Get experiment with its version history.

    Raises:
        HTTPException: 404 if experiment not found.
    """
    try:
        experiment = tracking.get_experiment(session, caller_id, experiment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e

    return build_experiment_detail(experiment)


@router.put("/experiments/{experiment_id}", response_model=ExperimentDetail)
def update_experiment(
    experiment_id: str,
    body: ExperimentUpdate,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentDetail:
    """Update an experiment; the previous state is kept as a version.

    Raises:
        HTTPException: 400 on invalid fields, 404 if not found,
            409 on a concurrent update.
    """
    patch = ExperimentPatch(
        model_name=body.model_name,
        accuracy=body.accuracy,
        loss=body.loss,
        notes=body.notes,
        tags=body.tags,
    )

    try:
        experiment = tracking.update_experiment(session, caller_id, experiment_id, patch)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=e.message) from e

    return build_experiment_detail(experiment)


@router.delete("/experiments/{experiment_id}", response_model=ExperimentDeletedResponse)
def delete_experiment(
    experiment_id: str,
    caller_id: str = Depends(get_caller_id),
    session: DbSession = Depends(get_db_session),
) -> ExperimentDeletedResponse:
    """Soft-delete an experiment.

    Raises:
        HTTPException: 404 if not found or already deleted.
    """
    try:
        tracking.delete_experiment(session, caller_id, experiment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e

    return ExperimentDeletedResponse(experiment_id=experiment_id, deleted=True)
