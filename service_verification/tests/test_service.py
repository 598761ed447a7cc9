"""
Unit tests for the verification service HTTP surface.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from service_verification.app.fingerprint import derive_identity_key
from service_verification.app.main import VerificationService, create_app
from service_verification.app.models import ComputeResult
from service_verification.app.oracle.verifier import VerificationOracle
from service_verification.app.persistence import MemoryVerificationStore, RestVerificationStore

TRUSTED_REQUEST = {"issuer": "Jain University", "credential": "student-id-42"}


class ExplodingOracle(VerificationOracle):
    """Oracle that always fails with an internal detail in its message."""

    async def verify(self, issuer, credential) -> ComputeResult:
        raise RuntimeError("zk circuit at /srv/secret/params failed")


class TestVerificationService:
    """Test cases for VerificationService."""

    @pytest.fixture
    def config(self):
        return get_config("verification", 3000, compute_latency_seconds=0)

    @pytest.fixture
    def store(self):
        return MemoryVerificationStore()

    @pytest.fixture
    def service(self, config, store):
        return VerificationService(config, store=store)

    @pytest.fixture
    def client(self, service):
        """Create test client with the service lifespan running."""
        with TestClient(service.app) as client:
            yield client

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "verification"
        assert data["tiers"] == ["VOLATILE_CACHE", "DURABLE_STORE", "COMPUTED"]

    def test_health_endpoint(self, client):
        """Test health endpoint reports the durable store."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["service"] == "verification"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"durable_store": "ok"}

    def test_health_degraded_during_store_outage(self, client, store):
        """Test an unreachable store degrades health without failing it."""
        store.set_outage()

        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["dependencies"]["durable_store"] == "error"

    def test_check_computes_then_serves_from_cache(self, client):
        """Test the source header and envelope across two identical requests."""
        first = client.post("/check", json=TRUSTED_REQUEST)
        assert first.status_code == 200
        assert first.headers["X-Source"] == "COMPUTED"

        body = first.json()
        assert body["success"] is True
        assert body["verified"] is True
        assert body["trust_score"] == 98.0
        assert body["proof"].startswith("0x")
        assert body["source"] == "COMPUTED"
        assert body["message"] == "New identity verified & cached"
        assert body["key"] == derive_identity_key(**TRUSTED_REQUEST)

        second = client.post("/check", json=TRUSTED_REQUEST)
        assert second.headers["X-Source"] == "VOLATILE_CACHE"
        assert second.json()["message"] == "Identity retrieved from cache"
        assert second.json()["proof"] == body["proof"]

    def test_check_rejected_credential(self, client):
        """Test an unverifiable identity is still a successful response."""
        response = client.post("/check", json={"issuer": "Other University", "credential": "staff-1"})
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["verified"] is False
        assert body["proof"] is None
        assert body["message"] == "Identity verification failed"

    @pytest.mark.parametrize("payload", [
        {"credential": "student-id-42"},
        {"issuer": "Jain University"},
        {"issuer": "  ", "credential": "student-id-42"},
        {},
    ])
    def test_check_missing_fields(self, client, store, payload):
        """Test missing fields are a 400 and never reach the store."""
        response = client.post("/check", json=payload)
        assert response.status_code == 400

        body = response.json()
        assert body["code"] == "INVALID_INPUT"
        assert body["error"]
        assert store.lookup_calls == 0

    def test_check_malformed_body(self, client):
        """Test a body that is not JSON is a 400 in the service's error shape."""
        response = client.post("/check", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    def test_check_unencodable_text(self, client, store):
        """Test a lone surrogate in the body is a 400, not a server error."""
        response = client.post(
            "/check",
            content=b'{"issuer": "\\ud800", "credential": "student-id-42"}',
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"
        assert store.lookup_calls == 0

    def test_compute_failure_is_generic_500(self, config, store):
        """Test oracle failures surface as a generic 500 without internals."""
        service = VerificationService(config, store=store, oracle=ExplodingOracle())
        with TestClient(service.app) as client:
            response = client.post("/check", json=TRUSTED_REQUEST)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Verification failed"
        assert body["code"] == "COMPUTE_ERROR"
        assert "secret" not in response.text
        assert store.records == {}

    def test_request_id_is_echoed(self, client):
        """Test the request id header is propagated or generated."""
        response = client.post("/check", json=TRUSTED_REQUEST, headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

        generated = client.get("/")
        assert generated.headers["X-Request-ID"]

    def test_error_carries_request_id(self, client):
        """Test error bodies include the request id."""
        response = client.post("/check", json={}, headers={"X-Request-ID": "req-err"})
        assert response.json()["request_id"] == "req-err"

    def test_unhandled_error_is_recorded_and_context_cleared(self, service):
        """Test a request that raises still records metrics and clears log context."""
        @service.app.get("/explode")
        async def explode():
            raise RuntimeError("unexpected")

        with patch("shared.base_service.clear_context") as mock_clear:
            with TestClient(service.app, raise_server_exceptions=False) as client:
                response = client.get("/explode")

        assert response.status_code == 500
        assert response.json()["error"] == "Verification failed"
        mock_clear.assert_called_once()
        assert 'http_requests_total{method="GET",endpoint="/explode",status_code="500"} 1.0' in \
            service.metrics.render().decode()

    def test_lookup_endpoint(self, client):
        """Test the lookup-only endpoint never computes."""
        key = derive_identity_key(**TRUSTED_REQUEST)

        missing = client.get(f"/check/{key}")
        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"

        client.post("/check", json=TRUSTED_REQUEST)
        found = client.get(f"/check/{key}")
        assert found.status_code == 200
        assert found.headers["X-Source"] == "VOLATILE_CACHE"
        assert found.json()["verified"] is True

    def test_lookup_rejects_malformed_key(self, client):
        """Test a malformed identity key is a 400."""
        response = client.get("/check/not-a-key")
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    def test_pending_write_lands_on_shutdown(self, config, store):
        """Test stopping the service drains background store writes."""
        service = VerificationService(config, store=store)
        with TestClient(service.app) as client:
            client.post("/check", json=TRUSTED_REQUEST)

        assert derive_identity_key(**TRUSTED_REQUEST) in store.records
        assert service.orchestrator.pending_writes == 0

    def test_stats_endpoint(self, client):
        """Test statistics endpoint."""
        client.post("/check", json=TRUSTED_REQUEST)

        data = client.get("/stats").json()
        assert data["cache"]["size"] == 1
        assert data["store_backend"] == "MemoryVerificationStore"
        assert "timestamp" in data

    def test_metrics_endpoint(self, client):
        """Test Prometheus exposition includes pipeline metrics."""
        client.post("/check", json=TRUSTED_REQUEST)
        client.post("/check", json=TRUSTED_REQUEST)

        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'verification_requests_total{source="COMPUTED"} 1.0' in response.text
        assert 'verification_requests_total{source="VOLATILE_CACHE"} 1.0' in response.text

    def test_rest_backend_requires_connection_settings(self):
        """Test the REST backend refuses to start unconfigured."""
        config = get_config("verification", 3000, store_backend="rest")
        with pytest.raises(ValueError):
            VerificationService(config)

    def test_rest_backend_selected(self):
        """Test configuration selects the REST store."""
        config = get_config(
            "verification", 3000,
            store_backend="rest",
            store_url="https://store.example.test",
            store_key="service-key"
        )
        service = VerificationService(config)
        assert isinstance(service.store, RestVerificationStore)

    def test_unknown_backend_rejected(self):
        """Test an unknown store backend is a configuration error."""
        config = get_config("verification", 3000, store_backend="redis")
        with pytest.raises(ValueError):
            VerificationService(config)

    def test_create_app(self):
        """Test the application factory."""
        app = create_app(get_config("verification", 3000, compute_latency_seconds=0))
        assert app.title == "Verification Service"
