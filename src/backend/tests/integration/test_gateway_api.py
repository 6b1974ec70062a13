"""
Integration Tests for the FastAPI gateway.

Uses async httpx against the ASGI app; providers are the local rule engine
and in-process fakes, so no network is involved.
"""
import httpx
import pytest

from conftest import FakeProvider
from ddx_gateway.config import GatewayConfig
from ddx_gateway.errors import UpstreamHTTPError, UpstreamParseError
from ddx_gateway.main import create_app
from ddx_gateway.providers.local_rules import LocalRulesProvider
from ddx_gateway.providers.registry import ProviderRegistry

CARDIAC = {"chief_complaint": "fever, cough, pleuritic chest pain"}
URI = {"chief_complaint": "runny nose, mild sore throat"}


@pytest.fixture
def app(make_settings, gateway):
    return create_app(settings=make_settings(), gateway=gateway)


@pytest.fixture
async def async_client(app):
    """Create async test client."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client


async def client_for(gateway: GatewayConfig, settings) -> httpx.AsyncClient:
    app = create_app(settings=settings, gateway=gateway)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
class TestHealthEndpoints:

    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "provider_default": "local_rules"}

    async def test_list_providers(self, async_client):
        response = await async_client.get("/ai/providers")
        assert response.status_code == 200
        assert response.json() == {"default": "local_rules", "enabled": ["local_rules", "fake"]}

    async def test_config_diagnostics(self, async_client):
        response = await async_client.get("/health/config")
        assert response.status_code == 200

        data = response.json()
        assert data["batch_concurrency"] == 2
        assert data["providers"]["isabel"]["enabled"] is False
        assert data["providers"]["local_rules"] == {
            "enabled": True, "configured": True, "mock": False,
        }


@pytest.mark.asyncio
class TestDiagnoseEndpoint:

    async def test_local_rules_cardiac(self, async_client):
        response = await async_client.post(
            "/ai/diagnose", json={"deidentified": True, "input": CARDIAC}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["engine"] == {"name": "local_rules", "version": "0.1"}
        assert data["triage"]["level"] == "high"
        assert data["differential"][0] == {
            "condition": "Unstable angina",
            "confidence": 0.6,
            "rationale": "ischemic-sounding chest pain",
        }
        assert data["recommended_tests"] == ["ECG", "Troponin"]
        assert "generated_at" in data["provenance"]
        assert "patient_id" not in data

    async def test_local_rules_low(self, async_client):
        response = await async_client.post(
            "/ai/diagnose", json={"deidentified": True, "input": URI}
        )
        data = response.json()
        assert data["triage"] == {"level": "low", "why": "no red flags"}
        assert [d["condition"] for d in data["differential"]] == ["Viral URI"]
        assert data["recommended_tests"] == ["Symptomatic care"]

    async def test_phi_gate(self, async_client):
        response = await async_client.post("/ai/diagnose", json={"input": CARDIAC})
        assert response.status_code == 400
        assert response.json()["error"] == "phi_not_allowed"

    @pytest.mark.parametrize("body", [
        {"deidentified": False},
        {"deidentified": False, "input": "free-text note with a patient name"},
        {"deidentified": False, "input": ["not", "a", "case"]},
    ])
    async def test_phi_gate_checked_before_input(self, async_client, body):
        response = await async_client.post("/ai/diagnose", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "phi_not_allowed"

    async def test_phi_override(self, make_settings, gateway):
        open_gateway = GatewayConfig(
            registry=gateway.registry, default_provider="local_rules", allow_phi=True
        )
        async with await client_for(open_gateway, make_settings()) as client:
            response = await client.post("/ai/diagnose", json={"input": URI})
        assert response.status_code == 200

    @pytest.mark.parametrize("body", [
        {"deidentified": True},
        {"deidentified": True, "input": {}},
        {"deidentified": True, "input": "fever and cough"},
        {"deidentified": True, "input": {"chief_complaint": ""}},
        {"deidentified": True, "input": {"chief_complaint": "cough", "demographics": {"age": -4}}},
    ])
    async def test_bad_request(self, async_client, body):
        response = await async_client.post("/ai/diagnose", json=body)
        assert response.status_code == 400
        assert response.json()["code"] == "bad_request"

    async def test_malformed_body(self, async_client):
        response = await async_client.post(
            "/ai/diagnose", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "bad_request"

    async def test_unknown_provider(self, async_client):
        response = await async_client.post(
            "/ai/diagnose?provider=watson", json={"deidentified": True, "input": URI}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "unknown_provider"

    async def test_disabled_provider_via_header(self, async_client):
        response = await async_client.post(
            "/ai/diagnose",
            json={"deidentified": True, "input": URI},
            headers={"X-Provider": "isabel"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "provider_disabled"

    async def test_provider_from_body(self, async_client, fake_provider):
        response = await async_client.post(
            "/ai/diagnose",
            json={"deidentified": True, "input": URI, "provider": "fake", "model": "m-1"},
        )
        assert response.status_code == 200
        assert response.json()["engine"]["name"] == "fake"
        assert fake_provider.calls[0][1].model == "m-1"

    async def test_query_beats_header_beats_body(self, async_client):
        response = await async_client.post(
            "/ai/diagnose?provider=fake",
            json={"deidentified": True, "input": URI, "provider": "isabel"},
            headers={"X-Provider": "watson"},
        )
        assert response.json()["engine"]["name"] == "fake"

        response = await async_client.post(
            "/ai/diagnose",
            json={"deidentified": True, "input": URI, "provider": "fake"},
            headers={"X-Provider": "local_rules"},
        )
        assert response.json()["engine"]["name"] == "local_rules"

    async def test_absent_confidence_is_omitted(self, async_client):
        response = await async_client.post(
            "/ai/diagnose?provider=fake", json={"deidentified": True, "input": URI}
        )
        entry = response.json()["differential"][0]
        assert entry == {"condition": URI["chief_complaint"]}

    async def test_upstream_errors(self, make_settings):
        failing = FakeProvider("fake", errors={
            "http": UpstreamHTTPError("fake", 503),
            "parse": UpstreamParseError("fake", "not json"),
        })
        gateway = GatewayConfig(registry=ProviderRegistry([failing]), default_provider="fake")

        async with await client_for(gateway, make_settings()) as client:
            http_error = await client.post(
                "/ai/diagnose", json={"deidentified": True, "input": {"chief_complaint": "http"}}
            )
            parse_error = await client.post(
                "/ai/diagnose", json={"deidentified": True, "input": {"chief_complaint": "parse"}}
            )

        assert http_error.status_code == 502
        assert http_error.json() == {
            "error": "fake_http_503",
            "code": "upstream_http_error",
            "details": {"provider": "fake", "status": 503},
        }
        assert parse_error.status_code == 502
        assert parse_error.json()["code"] == "upstream_parse_error"


@pytest.mark.asyncio
class TestBatchEndpoint:

    async def test_batch_with_disabled_item(self, async_client):
        items = [
            {"input": CARDIAC, "meta": {"row": 0}},
            {"input": URI},
            {"input": URI, "provider": "isabel", "meta": "third"},
            {"input": CARDIAC, "provider": "fake"},
            {"input": URI},
        ]
        response = await async_client.post(
            "/ai/diagnose/batch", json={"deidentified": True, "items": items}
        )
        assert response.status_code == 200

        data = response.json()
        assert data["summary"] == {"total": 5, "ok": 4, "failed": 1}
        assert [r["index"] for r in data["results"]] == [0, 1, 2, 3, 4]
        assert data["results"][2] == {
            "index": 2,
            "ok": False,
            "error": "provider_disabled",
            "error_code": "provider_disabled",
            "meta": "third",
        }
        assert data["results"][0]["meta"] == {"row": 0}
        assert data["results"][0]["output"]["triage"]["level"] == "high"
        assert data["results"][3]["output"]["engine"]["name"] == "fake"

    async def test_batch_request_level_provider(self, async_client):
        response = await async_client.post(
            "/ai/diagnose/batch",
            json={"deidentified": True, "items": [{"input": URI}], "model": "m-2"},
            headers={"X-Provider": "fake"},
        )
        result = response.json()["results"][0]
        assert result["output"]["engine"]["name"] == "fake"
        assert result["output"]["provenance"]["model"] == "m-2"

    async def test_batch_phi_gate(self, async_client):
        response = await async_client.post(
            "/ai/diagnose/batch", json={"deidentified": False, "items": [{"input": URI}]}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "phi_not_allowed"

    async def test_batch_phi_gate_checked_before_items(self, async_client):
        response = await async_client.post(
            "/ai/diagnose/batch", json={"deidentified": False, "items": {"input": URI}}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "phi_not_allowed"

    async def test_batch_items_must_be_a_list(self, async_client):
        response = await async_client.post(
            "/ai/diagnose/batch", json={"deidentified": True, "items": {"input": URI}}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "bad_request"

    async def test_empty_batch(self, async_client):
        response = await async_client.post("/ai/diagnose/batch", json={"deidentified": True})
        assert response.json() == {"summary": {"total": 0, "ok": 0, "failed": 0}, "results": []}

    async def test_invalid_item_does_not_fail_batch(self, async_client):
        response = await async_client.post(
            "/ai/diagnose/batch",
            json={"deidentified": True, "items": [{"input": {}}, {"input": URI}]},
        )
        data = response.json()
        assert data["summary"] == {"total": 2, "ok": 1, "failed": 1}
        assert data["results"][0]["error"] == "bad_request"


class TestAppSettings:

    def test_title_from_settings(self, make_settings, gateway):
        app = create_app(settings=make_settings(app_name="Triage Gateway"), gateway=gateway)
        assert app.title == "Triage Gateway"
