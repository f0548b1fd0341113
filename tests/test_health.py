"""
Health endpoint tests
"""

import datetime

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch


class TestHealthEndpoints:
    """Test health check endpoints"""

    def test_health_check_success(self, test_client: TestClient):
        """Test basic health check endpoint returns success"""
        response = test_client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()

        assert data["status"] == "healthy"
        assert data["environment"] == "test"
        assert isinstance(data["uptime"], (int, float))

    def test_health_check_timestamp_format(self, test_client: TestClient):
        data = test_client.get("/api/v1/health").json()
        try:
            datetime.datetime.fromisoformat(data["timestamp"].replace('Z', '+00:00'))
        except ValueError:
            pytest.fail("Timestamp is not in valid ISO format")

    def test_health_check_detailed(self, test_client: TestClient):
        """Test detailed health check includes component status"""
        response = test_client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

        components = data["components"]
        assert components["validation"]["schema_loaded"] is True
        assert components["validation"]["scripts_available"] is True
        assert all(components["storage"].values())
        assert components["features"]["current_environment"] == "test"

    def test_readiness_check(self, test_client: TestClient):
        response = test_client.get("/api/v1/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_readiness_check_without_scripts(self, test_client: TestClient):
        from scorm_medic.main import app
        from scorm_medic.utils.validation import get_validation_status

        async def scripts_missing():
            return {"schema_loaded": True, "scripts_available": False, "scripts": {}}

        app.dependency_overrides[get_validation_status] = scripts_missing
        try:
            response = test_client.get("/api/v1/health/ready")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["success"] is False

    def test_liveness_check(self, test_client: TestClient):
        response = test_client.get("/api/v1/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_detailed_degraded_when_storage_unwritable(self, test_client: TestClient):
        with patch("scorm_medic.routers.health.os.access", return_value=False):
            response = test_client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_root_endpoint(self, test_client: TestClient):
        data = test_client.get("/").json()
        assert data["name"] == "SCORM Medic API"
        assert data["health"] == "/api/v1/health"
