from unittest.mock import Mock

from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from main import app


class TestHealthCheckAPI:
    """Test cases for the /health endpoint"""

    def test_get_health_success(self, client: TestClient):
        """Test successful health check endpoint"""
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == settings.VERSION
        assert data["services"] == {"database": "healthy"}
        assert data["timestamp"].startswith("2025-01-01T12:00:00")

    def test_get_health_content_type(self, client: TestClient):
        """Test that health check returns JSON content type"""
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert "application/json" in response.headers.get("content-type", "")

    def test_get_health_no_authentication_required(self, client: TestClient):
        """Health endpoint should be publicly accessible"""
        response = client.get("/health", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == status.HTTP_200_OK

    def test_get_health_database_down(self, client: TestClient):
        """Database probe failure turns into 503 with an unhealthy body"""
        broken = Mock(spec=Session)
        broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        app.dependency_overrides[get_db] = lambda: broken

        response = client.get("/health")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["services"]["database"] == "unhealthy"
        broken.rollback.assert_called_once()
