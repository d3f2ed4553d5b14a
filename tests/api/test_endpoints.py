"""
API endpoint tests
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from api.main import app
from api.dependencies import get_db
from models.base import CheckpointStatus
from models.checkpoint import ScraperCheckpoint


def _checkpoint_row(project_key, status, offset=0, count=0, error=None):
    return ScraperCheckpoint(
        project_key=project_key,
        last_offset=offset,
        total_issues_scraped=count,
        status=status,
        error_message=error,
    )


@pytest.fixture
def db_session():
    session = AsyncMock()
    session.result = MagicMock()
    session.execute = AsyncMock(return_value=session.result)
    return session


@pytest.fixture
def client(db_session):
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    # not entered as a context manager so the scheduler does not start
    yield TestClient(app)

    app.dependency_overrides.clear()


def test_health_reports_checkpoints(client, db_session):
    db_session.result.scalars.return_value.all.return_value = [
        _checkpoint_row("HADOOP", CheckpointStatus.COMPLETED, 300, 300),
        _checkpoint_row("KAFKA", CheckpointStatus.ERROR, 100, 98, "Server error (503)"),
    ]

    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["database_connected"] is True
    assert data["status"] == "degraded"
    assert data["total_projects"] == 2
    assert data["completed_projects"] == 1
    assert data["failed_projects"] == 1
    assert data["checkpoints"][1]["error_message"] == "Server error (503)"
    assert "X-Request-ID" in response.headers


def test_health_without_database(client, db_session):
    db_session.execute.side_effect = OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "unhealthy"
    assert response.json()["database_connected"] is False


def test_status_of_harvested_project(client, db_session):
    db_session.result.scalar_one_or_none.return_value = _checkpoint_row(
        "KAFKA", CheckpointStatus.RUNNING, offset=150, count=150
    )
    db_session.result.scalar.return_value = 150

    response = client.get("/status/kafka")

    assert response.status_code == 200
    data = response.json()
    assert data["project_key"] == "KAFKA"
    assert data["checkpoint"]["status"] == "running"
    assert data["checkpoint"]["last_offset"] == 150
    assert data["issues_in_database"] == 150


def test_status_of_unknown_project(client, db_session):
    db_session.result.scalar_one_or_none.return_value = None
    db_session.result.scalar.return_value = 0

    response = client.get("/status/NOPE")

    assert response.status_code == 200
    assert response.json()["checkpoint"] is None
    assert response.json()["issues_in_database"] == 0


def test_status_when_database_unavailable(client, db_session):
    db_session.execute.side_effect = OperationalError("SELECT", {}, ConnectionRefusedError("refused"))

    response = client.get("/status/KAFKA")

    assert response.status_code == 503
    assert response.json()["detail"] == "Database unavailable"
