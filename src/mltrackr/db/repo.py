"""Repository pattern for database operations.

Encapsulates all SQLAlchemy queries, keeping domain logic pure.
Returns domain models (not SQLAlchemy entities) to external callers.

Every query here is scoped by owner_id and is_active; callers never see
rows belonging to someone else or rows that were soft-deleted.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Generator

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mltrackr.core.errors import ConcurrentUpdateError, StoreUnavailableError
from mltrackr.db.schema import Experiment, ExperimentTag, ExperimentVersion
from mltrackr.models.domain import (
    ExperimentEntity,
    ExperimentPatch,
    ListOptions,
    TagCount,
    VersionEntity,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["DbSession"]

TOP_TAGS_LIMIT = 10

_SORT_COLUMNS = {
    "created_at": Experiment.created_at,
    "accuracy": Experiment.accuracy,
    "loss": Experiment.loss,
    "model_name": Experiment.model_name,
}


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _version_to_entity(version: ExperimentVersion) -> VersionEntity:
    """Convert SQLAlchemy ExperimentVersion to domain entity."""
    return VersionEntity(
        model_name=version.model_name,
        accuracy=version.accuracy,
        loss=version.loss,
        notes=version.notes,
        captured_at=version.captured_at,
    )


def _experiment_to_entity(exp: Experiment) -> ExperimentEntity:
    """Convert SQLAlchemy Experiment to domain entity."""
    return ExperimentEntity(
        experiment_id=exp.experiment_id,
        owner_id=exp.owner_id,
        model_name=exp.model_name,
        accuracy=exp.accuracy,
        loss=exp.loss,
        notes=exp.notes,
        tags=[t.tag for t in exp.tags],
        versions=[_version_to_entity(v) for v in exp.versions],
        is_active=exp.is_active,
        created_at=exp.created_at,
        updated_at=exp.updated_at,
        revision=exp.revision,
    )


def _tag_rows(tags: list[str]) -> list[ExperimentTag]:
    return [ExperimentTag(position=i, tag=tag) for i, tag in enumerate(tags)]


# ============================================================================
# Error Translation
# ============================================================================


@contextmanager
def store_errors(session: DbSession) -> Generator[None, None, None]:
    """Translate SQLAlchemy failures into tracker errors.

    Rolls the session back before re-raising so a failed write never
    leaves half-applied state behind.

    Raises:
        ConcurrentUpdateError: A revision-guarded UPDATE matched no row, or
            another writer already took the same version slot.
        StoreUnavailableError: Any other database failure.
    """
    try:
        yield
    except (StaleDataError, IntegrityError) as e:
        session.rollback()
        raise ConcurrentUpdateError() from e
    except SQLAlchemyError as e:
        session.rollback()
        raise StoreUnavailableError() from e


# ============================================================================
# Experiment Repository
# ============================================================================


def _owned_query(session: DbSession, owner_id: str):
    return session.query(Experiment).filter(
        Experiment.owner_id == owner_id,
        Experiment.is_active.is_(True),
    )


def _get_owned_row(session: DbSession, owner_id: str, experiment_id: str) -> Experiment | None:
    return (
        _owned_query(session, owner_id)
        .filter(Experiment.experiment_id == experiment_id)
        .first()
    )


def get_experiment(
    session: DbSession, owner_id: str, experiment_id: str
) -> ExperimentEntity | None:
    """Get an active experiment owned by owner_id."""
    exp = _get_owned_row(session, owner_id, experiment_id)
    return _experiment_to_entity(exp) if exp else None


def create_experiment(session: DbSession, entity: ExperimentEntity) -> None:
    """Stage a new experiment row; the caller commits."""
    exp = Experiment(
        experiment_id=entity.experiment_id,
        owner_id=entity.owner_id,
        model_name=entity.model_name,
        accuracy=entity.accuracy,
        loss=entity.loss,
        notes=entity.notes,
        is_active=entity.is_active,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )
    exp.tags = _tag_rows(entity.tags)
    session.add(exp)


def apply_update(
    session: DbSession,
    current: ExperimentEntity,
    snapshot: VersionEntity,
    patch: ExperimentPatch,
    updated_at: datetime,
) -> bool:
    """Append snapshot to history and overwrite patched fields.

    The row must still be at the revision `current` was read at; the
    UPDATE emitted at commit is additionally conditional on that revision.

    Args:
        session: Database session.
        current: State the snapshot was taken from.
        snapshot: Version to append.
        patch: Fields to overwrite (None means unchanged).
        updated_at: New modification timestamp.

    Returns:
        False if the experiment is no longer visible to its owner.

    Raises:
        ConcurrentUpdateError: The row moved past current.revision.
    """
    exp = _get_owned_row(session, current.owner_id, current.experiment_id)
    if exp is None:
        return False
    if exp.revision != current.revision:
        raise ConcurrentUpdateError()

    exp.versions.append(
        ExperimentVersion(
            seq=len(exp.versions),
            model_name=snapshot.model_name,
            accuracy=snapshot.accuracy,
            loss=snapshot.loss,
            notes=snapshot.notes,
            captured_at=snapshot.captured_at,
        )
    )

    if patch.model_name is not None:
        exp.model_name = patch.model_name
    if patch.accuracy is not None:
        exp.accuracy = patch.accuracy
    if patch.loss is not None:
        exp.loss = patch.loss
    if patch.notes is not None:
        exp.notes = patch.notes
    if patch.tags is not None:
        exp.tags = _tag_rows(patch.tags)
    exp.updated_at = updated_at
    return True


def soft_delete(session: DbSession, owner_id: str, experiment_id: str, updated_at: datetime) -> bool:
    """Mark an active experiment inactive. Returns False if not visible."""
    exp = _get_owned_row(session, owner_id, experiment_id)
    if exp is None:
        return False
    exp.is_active = False
    exp.updated_at = updated_at
    return True


# ============================================================================
# Query Repository
# ============================================================================


def list_experiments(
    session: DbSession, owner_id: str, options: ListOptions
) -> tuple[list[ExperimentEntity], int]:
    """Get one page of experiments matching options.

    Returns:
        (page of experiments, total matching count)
    """
    query = _owned_query(session, owner_id)

    if options.search:
        needle = options.search.casefold()
        query = query.filter(
            or_(
                func.casefold(Experiment.model_name).contains(needle, autoescape=True),
                func.casefold(Experiment.notes).contains(needle, autoescape=True),
                Experiment.tags.any(
                    func.casefold(ExperimentTag.tag).contains(needle, autoescape=True)
                ),
            )
        )

    if options.tags:
        query = query.filter(Experiment.tags.any(ExperimentTag.tag.in_(options.tags)))

    if options.min_accuracy is not None:
        query = query.filter(Experiment.accuracy >= options.min_accuracy)
    if options.max_accuracy is not None:
        query = query.filter(Experiment.accuracy <= options.max_accuracy)

    total = query.count()

    column = _SORT_COLUMNS[options.sort_by]
    ordering = column.desc() if options.sort_order == "desc" else column.asc()
    rows = (
        query.order_by(ordering, Experiment.experiment_id.asc())
        .offset(options.offset)
        .limit(options.limit)
        .all()
    )
    return [_experiment_to_entity(r) for r in rows], total


def get_experiments_by_ids(
    session: DbSession, owner_id: str, experiment_ids: list[str]
) -> list[ExperimentEntity]:
    """Get the active experiments among experiment_ids owned by owner_id."""
    if not experiment_ids:
        return []
    rows = (
        _owned_query(session, owner_id)
        .filter(Experiment.experiment_id.in_(experiment_ids))
        .all()
    )
    return [_experiment_to_entity(r) for r in rows]


# ============================================================================
# Statistics Repository
# ============================================================================


def get_metric_aggregates(
    session: DbSession, owner_id: str
) -> tuple[int, float | None, float | None, float | None, float | None]:
    """Count and accuracy/loss aggregates over active owned experiments.

    Returns:
        (count, avg_accuracy, avg_loss, max_accuracy, min_loss); the
        aggregates are None when there are no experiments.
    """
    row = (
        session.query(
            func.count(Experiment.experiment_id),
            func.avg(Experiment.accuracy),
            func.avg(Experiment.loss),
            func.max(Experiment.accuracy),
            func.min(Experiment.loss),
        )
        .filter(
            Experiment.owner_id == owner_id,
            Experiment.is_active.is_(True),
        )
        .one()
    )
    return row[0], row[1], row[2], row[3], row[4]


def get_tag_counts(
    session: DbSession, owner_id: str, limit: int = TOP_TAGS_LIMIT
) -> list[TagCount]:
    """Most frequent tags over active owned experiments.

    Ties on count are broken alphabetically so results are stable.
    """
    count = func.count(ExperimentTag.tag_id).label("count")
    rows = (
        session.query(ExperimentTag.tag, count)
        .join(Experiment, Experiment.experiment_id == ExperimentTag.experiment_id)
        .filter(
            Experiment.owner_id == owner_id,
            Experiment.is_active.is_(True),
        )
        .group_by(ExperimentTag.tag)
        .order_by(count.desc(), ExperimentTag.tag.asc())
        .limit(limit)
        .all()
    )
    return [TagCount(tag=tag, count=n) for tag, n in rows]


# ============================================================================
# Batch Operations
# ============================================================================


def commit(session: DbSession) -> None:
    """Commit current transaction."""
    session.commit()
