"""Shared pytest fixtures for mltrackr tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mltrackr.db.schema import Base
from mltrackr.models.domain import ExperimentInput
from mltrackr.tracking.experiments import create_experiment


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def make_experiment(session):
    """Factory creating experiments through the tracking layer."""

    def _make(
        owner_id="alice",
        model_name="ResNet-50",
        accuracy=90.0,
        loss=0.1,
        notes=None,
        tags=None,
    ):
        return create_experiment(
            session,
            owner_id,
            ExperimentInput(
                model_name=model_name,
                accuracy=accuracy,
                loss=loss,
                notes=notes,
                tags=tags,
            ),
        )

    return _make
