"""Integration tests for /health, /ready, /metrics and request ids"""

from uploadflow.dependencies import get_storage
from uploadflow.domain.attachments.ports import StorageError
from uploadflow.main import create_app


class TestHealth:

    def test_health_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["components"]) == {"database", "attachment_storage"}

    def test_health_reports_broken_storage(self, client):
        class BrokenStorage:
            async def verify_storage_ready(self):
                raise StorageError("Storage directory does not exist")

        client.app.dependency_overrides[get_storage] = lambda: BrokenStorage()

        response = client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["components"]["attachment_storage"]["status"] == "unhealthy"

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}


class TestMetrics:

    def test_metrics_exposed(self, client, auth_headers):
        client.post("/", headers=auth_headers)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "uploadflow_uploads_created_total" in response.text
        assert "uploadflow_live_subscribers" in response.text


class TestRequestID:

    def test_generated_request_id(self, client):
        response = client.get("/ready")
        assert response.headers["X-Request-ID"]

    def test_client_request_id_is_echoed(self, client):
        response = client.get("/ready", headers={"X-Request-ID": "trace-me-123"})
        assert response.headers["X-Request-ID"] == "trace-me-123"


class TestAppFactory:

    def test_factory_app_serves_every_router(self, client):
        app = create_app()
        paths = {route.path for route in app.routes}

        assert client.app is app
        assert {"/", "/me", "/subscribe", "/health", "/attachments/{key}"} <= paths
