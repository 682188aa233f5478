from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient
from src.app import create_app
from src.api.router import health

client = TestClient(create_app())


def test_health_check_contract():
    """Contract test for health check endpoint
    Verifies the response schema and format matches the API contract
    """
    with patch.object(health, "check_database_health", AsyncMock(return_value={"status": "healthy", "message": "Connected"})), \
         patch.object(health, "check_chain_health", AsyncMock(return_value={"status": "healthy", "message": "Connected"})):
        response = client.get("/health")

    assert response.status_code == 200
    data = response.json()

    # Schema validation
    assert isinstance(data, dict)
    for field in ("status", "service", "version", "services", "metrics", "timestamp"):
        assert field in data

    assert data["status"] == "healthy"
    assert data["service"] == "VerifyingPaymaster"
    assert data["services"]["redis"]["status"] == "not_configured"
    assert "overall" in data["metrics"]


def test_health_reports_unhealthy_database():
    with patch.object(health, "check_database_health", AsyncMock(return_value={"status": "unhealthy", "message": "Ping failed"})), \
         patch.object(health, "check_chain_health", AsyncMock(return_value={"status": "healthy", "message": "Connected"})):
        data = client.get("/health").json()

    assert data["status"] == "unhealthy"
    assert data["services"]["database"]["status"] == "unhealthy"
