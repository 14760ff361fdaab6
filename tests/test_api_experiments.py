"""Tests for experiments API endpoints."""

import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from mltrackr.db.schema import Base
from mltrackr.tracking import experiments as tracking

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


def create_test_app_and_client(with_schema: bool = True):
    """Create app with test database and return (client, engine)."""
    from mltrackr.api.app import create_app, get_db_session

    # Create in-memory database with StaticPool to share connection
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if with_schema:
        Base.metadata.create_all(engine)

    app = create_app()

    def override_get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    client = TestClient(app)

    return client, engine


def create(client, headers=ALICE, **overrides):
    """POST an experiment and return the response JSON."""
    body = {"model_name": "ResNet-50", "accuracy": 91.2, "loss": 0.08, "tags": ["cv"]}
    body.update(overrides)
    response = client.post("/api/experiments", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthentication:
    """Caller identity is required."""

    def test_missing_user_header_returns_401(self):
        """Requests without X-User-Id are rejected."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments")
        assert response.status_code == 401

    def test_blank_user_header_returns_401(self):
        """A blank identity is not an identity."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments", headers={"X-User-Id": "  "})
        assert response.status_code == 401


class TestCreateEndpoint:
    """Test POST /api/experiments."""

    def test_returns_201_with_record(self):
        """Created experiment is returned with id and empty history."""
        client, _ = create_test_app_and_client()
        data = create(client)

        assert data["experiment_id"]
        assert data["owner_id"] == "alice"
        assert data["model_name"] == "ResNet-50"
        assert data["notes"] == ""
        assert data["tags"] == ["cv"]
        assert data["versions"] == []
        assert data["created_at"] == data["updated_at"]

    def test_out_of_range_accuracy_returns_400(self):
        """Range violations surface the constraint."""
        client, _ = create_test_app_and_client()
        response = client.post(
            "/api/experiments",
            json={"model_name": "m", "accuracy": 120, "loss": 0.1},
            headers=ALICE,
        )
        assert response.status_code == 400
        assert "accuracy" in response.json()["detail"]

    def test_empty_model_name_returns_400(self):
        """model_name must not be blank."""
        client, _ = create_test_app_and_client()
        response = client.post(
            "/api/experiments",
            json={"model_name": " ", "accuracy": 50, "loss": 0.1},
            headers=ALICE,
        )
        assert response.status_code == 400

    def test_missing_field_returns_422(self):
        """Missing required fields fail body validation."""
        client, _ = create_test_app_and_client()
        response = client.post(
            "/api/experiments", json={"model_name": "m", "accuracy": 50}, headers=ALICE
        )
        assert response.status_code == 422

    def test_unknown_field_returns_422(self):
        """Unknown keys are not silently accepted."""
        client, _ = create_test_app_and_client()
        response = client.post(
            "/api/experiments",
            json={"model_name": "m", "accuracy": 50, "loss": 0.1, "owner_id": "bob"},
            headers=ALICE,
        )
        assert response.status_code == 422

    def test_boolean_metric_returns_422(self):
        """JSON true is not accepted as an accuracy."""
        client, _ = create_test_app_and_client()
        response = client.post(
            "/api/experiments",
            json={"model_name": "m", "accuracy": True, "loss": 0.1},
            headers=ALICE,
        )
        assert response.status_code == 422

    def test_id_collision_returns_409(self, monkeypatch):
        """A create that hits an existing id is a conflict, not a server error."""
        client, _ = create_test_app_and_client()
        fixed = uuid.UUID("12345678123456781234567812345678")
        monkeypatch.setattr(tracking, "uuid", SimpleNamespace(uuid4=lambda: fixed))

        create(client)
        response = client.post(
            "/api/experiments",
            json={"model_name": "m", "accuracy": 50, "loss": 0.1},
            headers=ALICE,
        )
        assert response.status_code == 409
        assert "already in use" in response.json()["detail"]

    def test_timestamps_are_utc_aware(self):
        """Returned timestamps carry an explicit UTC offset."""
        client, _ = create_test_app_and_client()
        data = create(client)
        created_at = datetime.fromisoformat(data["created_at"].replace("Z", "+00:00"))
        assert created_at.utcoffset() == timedelta(0)


class TestGetEndpoint:
    """Test GET /api/experiments/{experiment_id}."""

    def test_returns_200_for_owner(self):
        """Owner can fetch their experiment."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.get(f"/api/experiments/{exp['experiment_id']}", headers=ALICE)
        assert response.status_code == 200
        assert response.json()["experiment_id"] == exp["experiment_id"]

    def test_returns_404_for_other_owner(self):
        """Another user sees not found, not forbidden."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.get(f"/api/experiments/{exp['experiment_id']}", headers=BOB)
        assert response.status_code == 404
        assert response.json()["detail"] == "Experiment not found"

    def test_returns_404_for_unknown_id(self):
        """Unknown ids are not found."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments/nonexistent-id", headers=ALICE)
        assert response.status_code == 404


class TestUpdateEndpoint:
    """Test PUT /api/experiments/{experiment_id}."""

    def test_update_appends_version(self):
        """The previous state is returned in versions."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.put(
            f"/api/experiments/{exp['experiment_id']}", json={"accuracy": 93.5}, headers=ALICE
        )
        assert response.status_code == 200
        data = response.json()
        assert data["accuracy"] == 93.5
        assert len(data["versions"]) == 1
        assert data["versions"][0]["accuracy"] == 91.2
        assert data["versions"][0]["captured_at"] == exp["updated_at"]

    def test_zero_accuracy_applied(self):
        """A JSON 0 is a real value."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.put(
            f"/api/experiments/{exp['experiment_id']}", json={"accuracy": 0}, headers=ALICE
        )
        assert response.json()["accuracy"] == 0

    def test_null_field_left_unchanged(self):
        """An explicit null is treated like an omitted field."""
        client, _ = create_test_app_and_client()
        exp = create(client, notes="keep me")

        response = client.put(
            f"/api/experiments/{exp['experiment_id']}",
            json={"notes": None, "loss": 0.05},
            headers=ALICE,
        )
        assert response.json()["notes"] == "keep me"
        assert response.json()["loss"] == 0.05

    def test_invalid_update_returns_400_and_no_version(self):
        """A rejected update leaves history untouched."""
        client, _ = create_test_app_and_client()
        exp = create(client)
        url = f"/api/experiments/{exp['experiment_id']}"

        response = client.put(url, json={"loss": -1}, headers=ALICE)
        assert response.status_code == 400

        assert client.get(url, headers=ALICE).json()["versions"] == []

    def test_other_owner_returns_404(self):
        """Updating someone else's experiment is not found."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.put(
            f"/api/experiments/{exp['experiment_id']}", json={"accuracy": 1}, headers=BOB
        )
        assert response.status_code == 404

    def test_unknown_field_returns_422(self):
        """Unknown keys in an update are rejected."""
        client, _ = create_test_app_and_client()
        exp = create(client)

        response = client.put(
            f"/api/experiments/{exp['experiment_id']}", json={"is_active": False}, headers=ALICE
        )
        assert response.status_code == 422


class TestDeleteEndpoint:
    """Test DELETE /api/experiments/{experiment_id}."""

    def test_delete_then_everything_not_found(self):
        """A deleted experiment vanishes from every read surface."""
        client, _ = create_test_app_and_client()
        exp = create(client, tags=["gone"])
        exp_id = exp["experiment_id"]

        response = client.delete(f"/api/experiments/{exp_id}", headers=ALICE)
        assert response.status_code == 200
        assert response.json() == {"experiment_id": exp_id, "deleted": True}

        assert client.get(f"/api/experiments/{exp_id}", headers=ALICE).status_code == 404
        assert client.get("/api/experiments", headers=ALICE).json()["data"] == []
        compare = client.get(f"/api/experiments/compare?ids={exp_id}", headers=ALICE)
        assert compare.json() == []
        stats = client.get("/api/experiments/stats", headers=ALICE).json()
        assert stats["overview"]["total_experiments"] == 0
        assert stats["top_tags"] == []

    def test_second_delete_returns_404(self):
        """Delete is not idempotent-success."""
        client, _ = create_test_app_and_client()
        exp = create(client)
        url = f"/api/experiments/{exp['experiment_id']}"

        assert client.delete(url, headers=ALICE).status_code == 200
        assert client.delete(url, headers=ALICE).status_code == 404


class TestListEndpoint:
    """Test GET /api/experiments."""

    def test_pagination_metadata(self):
        """Pagination block reports page, limit, total, pages."""
        client, _ = create_test_app_and_client()
        for i in range(12):
            create(client, model_name=f"m{i}")

        response = client.get("/api/experiments?page=2&limit=5", headers=ALICE)
        assert response.status_code == 200
        data = response.json()
        assert len(data["data"]) == 5
        assert data["pagination"] == {"page": 2, "limit": 5, "total": 12, "pages": 3}

    def test_filters_combine(self):
        """Search, tags and accuracy bounds apply together."""
        client, _ = create_test_app_and_client()
        create(client, model_name="ResNet-50", accuracy=91.0, tags=["cv"])
        create(client, model_name="ResNet-18", accuracy=70.0, tags=["cv"])
        create(client, model_name="BERT", accuracy=95.0, tags=["nlp"])

        response = client.get(
            "/api/experiments?search=resnet&tags=cv,nlp&min_accuracy=80", headers=ALICE
        )
        names = [e["model_name"] for e in response.json()["data"]]
        assert names == ["ResNet-50"]

    def test_sort_by_accuracy_asc(self):
        """sort_by and sort_order control ordering."""
        client, _ = create_test_app_and_client()
        for acc in (80.0, 60.0, 70.0):
            create(client, accuracy=acc)

        response = client.get(
            "/api/experiments?sort_by=accuracy&sort_order=asc", headers=ALICE
        )
        assert [e["accuracy"] for e in response.json()["data"]] == [60.0, 70.0, 80.0]

    def test_invalid_sort_returns_400(self):
        """Unknown sort fields are rejected."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments?sort_by=owner_id", headers=ALICE)
        assert response.status_code == 400

    def test_invalid_limit_returns_400(self):
        """limit must be positive."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments?limit=0", headers=ALICE)
        assert response.status_code == 400

    def test_huge_page_returns_400(self):
        """A page past the 64-bit row offset is a client error, not a crash."""
        client, _ = create_test_app_and_client()
        create(client)
        response = client.get("/api/experiments?page=100000000000000000000", headers=ALICE)
        assert response.status_code == 400
        assert "too large" in response.json()["detail"]

    def test_search_folds_non_ascii_case(self):
        """Search over HTTP matches accented capitals."""
        client, _ = create_test_app_and_client()
        create(client, model_name="ÉCOLE-Net")
        response = client.get("/api/experiments?search=école", headers=ALICE)
        assert response.json()["pagination"]["total"] == 1


class TestCompareEndpoint:
    """Test GET /api/experiments/compare."""

    def test_returns_only_owned(self):
        """Foreign and unknown ids are silently dropped."""
        client, _ = create_test_app_and_client()
        mine = create(client, headers=ALICE)
        theirs = create(client, headers=BOB)

        ids = f"{mine['experiment_id']},{theirs['experiment_id']},missing"
        response = client.get(f"/api/experiments/compare?ids={ids}", headers=ALICE)
        assert response.status_code == 200
        assert [e["experiment_id"] for e in response.json()] == [mine["experiment_id"]]

    def test_missing_ids_returns_400(self):
        """ids is required."""
        client, _ = create_test_app_and_client()
        response = client.get("/api/experiments/compare", headers=ALICE)
        assert response.status_code == 400
        assert response.json()["detail"] == "Experiment IDs are required"


class TestStatsEndpoint:
    """Test GET /api/experiments/stats."""

    def test_returns_overview_and_top_tags(self):
        """Stats route is not shadowed by the experiment id route."""
        client, _ = create_test_app_and_client()
        create(client, accuracy=70.0, loss=0.5, tags=["cv"])
        create(client, accuracy=80.0, loss=0.3, tags=["cv", "nlp"])
        create(client, accuracy=90.0, loss=0.1, tags=[])

        response = client.get("/api/experiments/stats", headers=ALICE)
        assert response.status_code == 200
        data = response.json()
        assert data["overview"]["total_experiments"] == 3
        assert data["overview"]["avg_accuracy"] == 80.0
        assert data["overview"]["max_accuracy"] == 90.0
        assert data["overview"]["min_loss"] == 0.1
        assert data["top_tags"] == [{"tag": "cv", "count": 2}, {"tag": "nlp", "count": 1}]


class TestStoreFailure:
    """Store failures surface as 503 without internals."""

    def test_missing_tables_returns_503(self):
        """A broken store yields a generic failure message."""
        client, _ = create_test_app_and_client(with_schema=False)
        response = client.get("/api/experiments", headers=ALICE)
        assert response.status_code == 503
        assert response.json() == {"detail": "Experiment store unavailable"}


class TestAPIHealthCheck:
    """Test API health check endpoint."""

    def test_health_endpoint_returns_200(self):
        """Health endpoint returns 200 OK."""
        client, _ = create_test_app_and_client()
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_ok_status(self):
        """Health endpoint returns ok status and service name."""
        client, _ = create_test_app_and_client()
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["service"] == "mltrackr"
        assert "timestamp" in data
