import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from prism.api import create_app
from prism.config import Config
from prism.errors import CredentialError, NetworkError, UpstreamError
from prism.metrics import AdapterMetrics
from prism.models import CLAUDE, GEMINI, GEMINI_MONITORING, OPENAI, IntegrationSnapshot
from prism.provider.claude import ClaudeAdapter
from prism.provider.gemini_monitoring import GeminiMonitoringAdapter
from prism.service import UsageService


class StaticAdapter:
    def __init__(self, name: "str", result) -> "None":
        self._name = name
        self._result = result
        self.credentials: "list[dict]" = []

    @property
    def name(self) -> "str":
        return self._name

    async def fetch_usage(self, credential):
        self.credentials.append(dict(credential))
        if isinstance(self._result, Exception):
            raise self._result
        return self._result

    async def close(self) -> "None":
        pass


@pytest.fixture()
def adapters(claude_usage, gemini_usage, monitoring_usage) -> "dict":
    return {
        CLAUDE: StaticAdapter(CLAUDE, claude_usage),
        GEMINI: StaticAdapter(GEMINI, gemini_usage),
        GEMINI_MONITORING: StaticAdapter(GEMINI_MONITORING, monitoring_usage),
        OPENAI: StaticAdapter(OPENAI, UpstreamError("Incorrect API key provided", 401)),
    }


@pytest.fixture()
def client(adapters, registry: "CollectorRegistry"):
    service = UsageService(adapters, AdapterMetrics(registry))
    app = create_app(Config(gemini_token_scale=1000), service=service, registry=registry)
    with TestClient(app) as test_client:
        yield test_client


class TestIntegrationRoutes:
    def test_claude_returns_record(self, client, adapters, claude_usage) -> "None":
        resp = client.post("/api/integrations/claude", json={"adminKey": "sk-ant"})

        assert resp.status_code == 200
        assert resp.json() == claude_usage.to_dict()
        assert adapters[CLAUDE].credentials == [{"adminKey": "sk-ant"}]

    def test_gemini_monitoring_accepts_object(self, client, adapters) -> "None":
        resp = client.post(
            "/api/integrations/gemini-monitoring",
            json={"serviceAccountJson": {"type": "service_account"}, "projectId": "p"},
        )

        assert resp.status_code == 200
        assert resp.json()["provider"] == "gemini-monitoring"
        assert adapters[GEMINI_MONITORING].credentials[0]["serviceAccountJson"] == {
            "type": "service_account"
        }

    def test_upstream_error_is_mirrored(self, client) -> "None":
        resp = client.post("/api/integrations/openai", json={"apiKey": "sk-bad"})

        assert resp.status_code == 401
        assert resp.json() == {"error": "Incorrect API key provided"}

    def test_missing_body_fields_reach_adapter(self, client, adapters) -> "None":
        adapters[GEMINI]._result = CredentialError("Gemini API key is required")

        resp = client.post("/api/integrations/gemini", json={})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Gemini API key is required"}

    def test_network_error(self, client, adapters) -> "None":
        adapters[CLAUDE]._result = NetworkError("Failed to connect to Anthropic API")

        resp = client.post("/api/integrations/claude", json={"adminKey": "k"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to connect to Anthropic API"}


class TestDashboardRoute:
    def test_derives_views(self, client, claude_usage, monitoring_usage) -> "None":
        snapshot = IntegrationSnapshot(
            claude=claude_usage, gemini_monitoring=monitoring_usage
        )

        resp = client.post("/api/dashboard", json=snapshot.to_dict())

        assert resp.status_code == 200
        data = resp.json()
        assert data["totalTokens"] == 1650
        assert data["weeklyTrend"][0]["Gemini"] == 12000
        assert data["connected"] == ["claude", "geminiMonitoring"]

    def test_empty_snapshot_uses_samples(self, client) -> "None":
        resp = client.post("/api/dashboard", json={})

        assert resp.status_code == 200
        assert resp.json()["hasRealData"] is False

    def test_malformed_snapshot(self, client) -> "None":
        resp = client.post("/api/dashboard", json={"claude": "not a record"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid integration snapshot"}


def test_health(client) -> "None":
    assert client.get("/api/health").json() == {"status": "ok"}


def test_metrics_endpoint(client) -> "None":
    client.post("/api/integrations/claude", json={"adminKey": "k"})

    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert "prism_adapter_requests_total" in resp.text


@pytest.fixture()
def live_client(registry: "CollectorRegistry"):
    # real adapters; credential checks run before any network call
    adapters = {
        CLAUDE: ClaudeAdapter(),
        GEMINI_MONITORING: GeminiMonitoringAdapter(),
    }
    service = UsageService(adapters, AdapterMetrics(registry))
    app = create_app(Config(), service=service, registry=registry)
    with TestClient(app) as test_client:
        yield test_client


class TestCredentialValidation:
    def test_null_admin_key(self, live_client) -> "None":
        resp = live_client.post("/api/integrations/claude", json={"adminKey": None})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Admin API key is required"}

    def test_null_project_id(self, live_client) -> "None":
        resp = live_client.post(
            "/api/integrations/gemini-monitoring",
            json={"serviceAccountJson": "{}", "projectId": None},
        )

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Both serviceAccountJson and projectId are required"
        }

    def test_mistyped_service_account(self, live_client) -> "None":
        resp = live_client.post(
            "/api/integrations/gemini-monitoring",
            json={"serviceAccountJson": 42, "projectId": "p"},
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid service account JSON"}

    def test_body_not_an_object(self, live_client) -> "None":
        resp = live_client.post("/api/integrations/claude", json=["sk-ant"])

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid request body"}
