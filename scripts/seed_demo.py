#!/usr/bin/env python3
"""Seed a demo database with experiments and version history.

Usage:
    python scripts/seed_demo.py

This script:
1. Initializes the demo database
2. Creates a handful of experiments for the demo user
3. Applies a few updates so the history view has versions to show
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mltrackr.db.session import get_db_session, init_db  # noqa: E402
from mltrackr.models.domain import ExperimentInput, ExperimentPatch  # noqa: E402
from mltrackr.tracking.experiments import (  # noqa: E402
    create_experiment,
    list_experiments,
    update_experiment,
)

# Constants
DEMO_DB_PATH = PROJECT_ROOT / "demo.db"
DEMO_USER_ID = "demo-user"

DEMO_EXPERIMENTS = [
    ExperimentInput("ResNet-50", 91.2, 0.08, "Baseline on CIFAR-10", ["cv", "resnet"]),
    ExperimentInput("BERT-base", 88.4, 0.31, "Sentiment fine-tune", ["nlp", "transformer"]),
    ExperimentInput("XGBoost", 84.9, 0.42, "Churn tabular model", ["tabular"]),
    ExperimentInput("ViT-B/16", 93.1, 0.06, "", ["cv", "transformer"]),
]

DEMO_UPDATES = {
    "ResNet-50": [ExperimentPatch(accuracy=93.5), ExperimentPatch(loss=0.05, notes="tuned")],
    "BERT-base": [ExperimentPatch(accuracy=89.7, tags=["nlp", "transformer", "lr-sweep"])],
}


def seed_database() -> None:
    """Create demo experiments and their updates."""
    with get_db_session(DEMO_DB_PATH) as session:
        if list_experiments(session, DEMO_USER_ID).total > 0:
            print(f"Demo experiments already exist for {DEMO_USER_ID}")
            return

        for data in DEMO_EXPERIMENTS:
            experiment = create_experiment(session, DEMO_USER_ID, data)
            print(f"  Created: {experiment.model_name} ({experiment.experiment_id[:8]}...)")

            for patch in DEMO_UPDATES.get(data.model_name, []):
                experiment = update_experiment(
                    session, DEMO_USER_ID, experiment.experiment_id, patch
                )
            if experiment.versions:
                print(f"    Versions: {len(experiment.versions)}")


def main() -> int:
    """Main entry point."""
    print("=" * 60)
    print("MLTrackr Demo Seeding Script")
    print("=" * 60)

    print("\n[1/2] Initializing database...")
    init_db(DEMO_DB_PATH)

    print("\n[2/2] Seeding experiments...")
    seed_database()

    print("\n" + "=" * 60)
    print("Demo seeding complete!")
    print(f"Database: {DEMO_DB_PATH}")
    print(f"Serve with: MLTRACKR_DB_PATH={DEMO_DB_PATH} uvicorn mltrackr.api.app:app")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
