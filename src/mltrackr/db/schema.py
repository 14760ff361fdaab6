"""Database schema for MLTrackr.

Experiments own their version history and tags; both child tables are
always loaded together with the parent row.
"""

import sqlite3
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


@event.listens_for(Engine, "connect")
def register_sqlite_functions(dbapi_connection, connection_record):
    """Install a Unicode-aware casefold() on every SQLite connection.

    SQLite's built-in lower() only folds ASCII letters.
    """
    if isinstance(dbapi_connection, sqlite3.Connection):
        dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)


class UTCDateTime(TypeDecorator):
    """DateTime stored as naive UTC and always read back timezone-aware."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Experiment(Base):
    """A tracked ML experiment owned by exactly one user.

    Writes are guarded by optimistic concurrency: every UPDATE is
    conditional on the revision that was read, so two racing updates
    cannot both append a version on top of the same state.
    """

    __tablename__ = "experiments"

    experiment_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    model_name: Mapped[str] = mapped_column(String(256), nullable=False)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False)
    loss: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    versions: Mapped[list["ExperimentVersion"]] = relationship(
        back_populates="experiment",
        order_by="ExperimentVersion.seq",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    tags: Mapped[list["ExperimentTag"]] = relationship(
        back_populates="experiment",
        order_by="ExperimentTag.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision}


class ExperimentVersion(Base):
    """Snapshot of an experiment's state before an update (append-only).

    Invariant: UNIQUE(experiment_id, seq)
    History stays linear even if two writers get past the revision check.
    """

    __tablename__ = "experiment_versions"

    version_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("experiments.experiment_id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    model_name: Mapped[str] = mapped_column(String(256), nullable=False)
    accuracy: Mapped[float] = mapped_column(Float, nullable=False)
    loss: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    captured_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    experiment: Mapped[Experiment] = relationship(back_populates="versions")

    __table_args__ = (UniqueConstraint("experiment_id", "seq", name="uq_version_seq"),)


class ExperimentTag(Base):
    """A tag attached to an experiment, kept in display order."""

    __tablename__ = "experiment_tags"

    tag_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("experiments.experiment_id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    tag: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    experiment: Mapped[Experiment] = relationship(back_populates="tags")
