"""Experiment lifecycle: create, read, update with history, soft delete.

Handles validation and the versioning rule. Every function takes the
caller's identity explicitly and only ever touches that caller's records.
Domain logic is pure - database operations go through repo.
"""

from __future__ import annotations

import logging
import math
import uuid

from mltrackr.core.errors import ConcurrentUpdateError, NotFoundError, ValidationError
from mltrackr.db import repo
from mltrackr.db.repo import DbSession
from mltrackr.db.schema import utcnow
from mltrackr.models.domain import (
    SORT_FIELDS,
    SORT_ORDERS,
    ExperimentEntity,
    ExperimentInput,
    ExperimentPage,
    ExperimentPatch,
    ListOptions,
    VersionEntity,
)

logger = logging.getLogger(__name__)

ACCURACY_MIN = 0.0
ACCURACY_MAX = 100.0
LOSS_MIN = 0.0

# Largest row offset SQLite accepts (signed 64-bit INTEGER)
MAX_ROW_OFFSET = 2**63 - 1


# ============================================================================
# Validation
# ============================================================================


def _validate_model_name(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("model_name is required and must be a non-empty string")
    return value.strip()


def _validate_number(
    name: str, value: object, minimum: float, maximum: float | None = None
) -> float:
    """Check that value is a finite number within [minimum, maximum]."""
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    if number < minimum:
        raise ValidationError(f"{name} must be >= {minimum:g}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{name} must be <= {maximum:g}")
    return number


def _validate_notes(value: object) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("notes must be a string")
    return value


def normalize_tags(tags: object) -> list[str]:
    """Trim tags, drop blanks, and de-duplicate keeping first occurrence.

    Raises:
        ValidationError: If tags is not a list of strings.
    """
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple)):
        raise ValidationError("tags must be a list of strings")

    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def parse_csv(value: str | list[str] | None) -> list[str]:
    """Split a comma-separated string into trimmed, non-empty tokens."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    return [p.strip() for p in parts if p and p.strip()]


def _validate_patch(patch: ExperimentPatch) -> ExperimentPatch:
    """Validate present fields of a patch; absent fields stay None."""
    return ExperimentPatch(
        model_name=(
            _validate_model_name(patch.model_name) if patch.model_name is not None else None
        ),
        accuracy=(
            _validate_number("accuracy", patch.accuracy, ACCURACY_MIN, ACCURACY_MAX)
            if patch.accuracy is not None
            else None
        ),
        loss=(
            _validate_number("loss", patch.loss, LOSS_MIN)
            if patch.loss is not None
            else None
        ),
        notes=_validate_notes(patch.notes) if patch.notes is not None else None,
        tags=normalize_tags(patch.tags) if patch.tags is not None else None,
    )


# ============================================================================
# Operations
# ============================================================================


def create_experiment(
    session: DbSession, caller_id: str, data: ExperimentInput
) -> ExperimentEntity:
    """Create a new experiment owned by caller_id.

    Args:
        session: Database session.
        caller_id: Authenticated user creating the experiment.
        data: Experiment fields.

    Returns:
        The stored experiment with its generated id and empty history.

    Raises:
        ValidationError: If a required field is missing or out of range.
        ConcurrentUpdateError: If the generated id is already stored.
        StoreUnavailableError: If the database write fails.
    """
    now = utcnow()
    entity = ExperimentEntity(
        experiment_id=uuid.uuid4().hex,
        owner_id=caller_id,
        model_name=_validate_model_name(data.model_name),
        accuracy=_validate_number("accuracy", data.accuracy, ACCURACY_MIN, ACCURACY_MAX),
        loss=_validate_number("loss", data.loss, LOSS_MIN),
        notes=_validate_notes(data.notes),
        tags=normalize_tags(data.tags),
        versions=[],
        is_active=True,
        created_at=now,
        updated_at=now,
    )

    try:
        with repo.store_errors(session):
            repo.create_experiment(session, entity)
            repo.commit(session)
            created = repo.get_experiment(session, caller_id, entity.experiment_id)
    except ConcurrentUpdateError as e:
        logger.warning("Experiment id %s already in use", entity.experiment_id)
        raise ConcurrentUpdateError("Experiment id already in use, retry the create") from e
    if created is None:
        raise NotFoundError()

    logger.info("Created experiment %s for %s", entity.experiment_id, caller_id)
    return created


def get_experiment(session: DbSession, caller_id: str, experiment_id: str) -> ExperimentEntity:
    """Get a single experiment.

    Raises:
        NotFoundError: If absent, deleted, or owned by another user.
    """
    with repo.store_errors(session):
        experiment = repo.get_experiment(session, caller_id, experiment_id)
    if experiment is None:
        raise NotFoundError()
    return experiment


def snapshot_of(experiment: ExperimentEntity) -> VersionEntity:
    """Capture an experiment's current state as a historical version.

    Pure function - no database access. captured_at is the time the
    captured state was last saved, not the time of the snapshot.
    """
    return VersionEntity(
        model_name=experiment.model_name,
        accuracy=experiment.accuracy,
        loss=experiment.loss,
        notes=experiment.notes,
        captured_at=experiment.updated_at,
    )


def update_experiment(
    session: DbSession,
    caller_id: str,
    experiment_id: str,
    patch: ExperimentPatch,
) -> ExperimentEntity:
    """Update an experiment, preserving its prior state in history.

    Appends exactly one version holding the pre-update values, then
    overwrites each field present in the patch. Zero is a real value for
    accuracy and loss; tags, when given, replace the whole collection.
    The append and the overwrite commit together or not at all.

    Args:
        session: Database session.
        caller_id: Authenticated user performing the update.
        experiment_id: Experiment to update.
        patch: Fields to change.

    Returns:
        The updated experiment.

    Raises:
        NotFoundError: If absent, deleted, or owned by another user.
        ValidationError: If a provided field is invalid (nothing is written).
        ConcurrentUpdateError: If another writer changed the experiment first.
        StoreUnavailableError: If the database call fails.
    """
    with repo.store_errors(session):
        current = repo.get_experiment(session, caller_id, experiment_id)
    if current is None:
        raise NotFoundError()

    changes = _validate_patch(patch)
    snapshot = snapshot_of(current)

    try:
        with repo.store_errors(session):
            if not repo.apply_update(session, current, snapshot, changes, utcnow()):
                raise NotFoundError()
            repo.commit(session)
            updated = repo.get_experiment(session, caller_id, experiment_id)
    except ConcurrentUpdateError:
        session.rollback()
        logger.warning("Concurrent update rejected for experiment %s", experiment_id)
        raise

    if updated is None:
        raise NotFoundError()

    logger.info(
        "Updated experiment %s (%d versions)", experiment_id, len(updated.versions)
    )
    return updated


def delete_experiment(session: DbSession, caller_id: str, experiment_id: str) -> None:
    """Soft-delete an experiment.

    Deleting twice reports NotFoundError the second time.

    Raises:
        NotFoundError: If absent, already deleted, or owned by another user.
    """
    with repo.store_errors(session):
        deleted = repo.soft_delete(session, caller_id, experiment_id, utcnow())
        if deleted:
            repo.commit(session)
    if not deleted:
        raise NotFoundError()
    logger.info("Deleted experiment %s", experiment_id)


# ============================================================================
# Queries
# ============================================================================


def build_list_options(
    *,
    search: str | None = None,
    tags: str | list[str] | None = None,
    min_accuracy: float | None = None,
    max_accuracy: float | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> ListOptions:
    """Validate raw list parameters into ListOptions.

    Raises:
        ValidationError: On unknown sort keys, bad bounds, or bad paging.
    """
    sort_by = sort_by or "created_at"
    sort_order = sort_order or "desc"
    if sort_by not in SORT_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
    if sort_order not in SORT_ORDERS:
        raise ValidationError(f"sort_order must be one of: {', '.join(SORT_ORDERS)}")
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("page must be an integer >= 1")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be an integer >= 1")
    if limit > MAX_ROW_OFFSET or (page - 1) * limit > MAX_ROW_OFFSET:
        raise ValidationError("page and limit are too large")

    return ListOptions(
        search=search or None,
        tags=parse_csv(tags),
        min_accuracy=(
            _validate_number("min_accuracy", min_accuracy, -math.inf)
            if min_accuracy is not None
            else None
        ),
        max_accuracy=(
            _validate_number("max_accuracy", max_accuracy, -math.inf)
            if max_accuracy is not None
            else None
        ),
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


def list_experiments(
    session: DbSession, caller_id: str, options: ListOptions | None = None
) -> ExperimentPage:
    """List the caller's active experiments with filters and paging.

    Args:
        session: Database session.
        caller_id: Authenticated user.
        options: Search/filter/sort/paging options; defaults apply if None.

    Returns:
        ExperimentPage with items and pagination metadata.
    """
    options = options or ListOptions()
    with repo.store_errors(session):
        items, total = repo.list_experiments(session, caller_id, options)
    return ExperimentPage(
        items=items,
        page=options.page,
        limit=options.limit,
        total=total,
        pages=math.ceil(total / options.limit),
    )


def get_experiments_for_comparison(
    session: DbSession, caller_id: str, ids: str | list[str] | None
) -> list[ExperimentEntity]:
    """Fetch several experiments for side-by-side comparison.

    Ids that are unknown, deleted, or owned by someone else are silently
    dropped from the result.

    Raises:
        ValidationError: If no ids are given.
    """
    experiment_ids = parse_csv(ids)
    if not experiment_ids:
        raise ValidationError("Experiment IDs are required")
    with repo.store_errors(session):
        return repo.get_experiments_by_ids(session, caller_id, experiment_ids)
