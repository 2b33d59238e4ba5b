import httpx
import pytest
import respx

from prism.errors import CredentialError, UpstreamError
from prism.provider.gemini import (
    GEMINI_BASE_URL,
    PROBE_MODEL,
    GeminiAdapter,
    select_gemini_models,
)

COUNT_TOKENS_URL = f"{GEMINI_BASE_URL}/models/{PROBE_MODEL}:countTokens"


def _models_payload(count: "int") -> "dict":
    models = [
        {
            "name": f"models/gemini-{i}.0-pro",
            "displayName": f"Gemini {i}.0 Pro",
            "inputTokenLimit": 32768,
            "outputTokenLimit": 8192,
        }
        for i in range(count)
    ]
    models.append({"name": "models/text-embedding-004", "displayName": "Embedding"})
    return {"models": models}


class TestSelectGeminiModels:
    def test_filters_and_caps_details(self) -> "None":
        total, details = select_gemini_models(_models_payload(8)["models"])

        assert total == 8
        assert len(details) == 6
        assert details[0].id == "models/gemini-0.0-pro"
        assert details[0].name == "Gemini 0.0 Pro"
        assert details[0].input_token_limit == 32768

    def test_name_falls_back_to_id(self) -> "None":
        _, details = select_gemini_models([{"name": "models/gemini-x"}])

        assert details[0].name == "models/gemini-x"
        assert details[0].input_token_limit == 0


class TestGeminiAdapter:
    @pytest.mark.asyncio
    @respx.mock
    async def test_lists_models_and_probes_key(self) -> "None":
        models_route = respx.get(f"{GEMINI_BASE_URL}/models").mock(
            return_value=httpx.Response(200, json=_models_payload(2))
        )
        respx.post(COUNT_TOKENS_URL).mock(
            return_value=httpx.Response(200, json={"totalTokens": 1})
        )

        adapter = GeminiAdapter()
        usage = await adapter.fetch_usage({"apiKey": "AIza-test"})
        await adapter.close()

        assert usage.key_valid is True
        assert usage.total_models_available == 2
        assert [m.id for m in usage.models] == [
            "models/gemini-0.0-pro",
            "models/gemini-1.0-pro",
        ]
        assert usage.live_token_count == 1
        assert models_route.calls.last.request.url.params["key"] == "AIza-test"

    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_failure_is_not_fatal(self) -> "None":
        respx.get(f"{GEMINI_BASE_URL}/models").mock(
            return_value=httpx.Response(200, json=_models_payload(1))
        )
        respx.post(COUNT_TOKENS_URL).mock(
            return_value=httpx.Response(404, json={"error": {"message": "not found"}})
        )

        adapter = GeminiAdapter()
        usage = await adapter.fetch_usage({"apiKey": "AIza-test"})
        await adapter.close()

        assert usage.key_valid is True
        assert usage.live_token_count is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_probe_transport_failure_is_not_fatal(self) -> "None":
        respx.get(f"{GEMINI_BASE_URL}/models").mock(
            return_value=httpx.Response(200, json={"models": []})
        )
        respx.post(COUNT_TOKENS_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        adapter = GeminiAdapter()
        usage = await adapter.fetch_usage({"apiKey": "AIza-test"})
        await adapter.close()

        assert usage.total_models_available == 0
        assert usage.models == []
        assert usage.live_token_count is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_token_count_non_object_body_is_not_fatal(self) -> "None":
        respx.get(f"{GEMINI_BASE_URL}/models").mock(
            return_value=httpx.Response(200, json=_models_payload(2))
        )
        respx.post(COUNT_TOKENS_URL).mock(
            return_value=httpx.Response(200, json=["unexpected"])
        )

        adapter = GeminiAdapter()
        usage = await adapter.fetch_usage({"apiKey": "AIza-test"})
        await adapter.close()

        assert usage.total_models_available == 2
        assert usage.live_token_count is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_key_mirrors_status(self) -> "None":
        respx.get(f"{GEMINI_BASE_URL}/models").mock(
            return_value=httpx.Response(
                400, json={"error": {"message": "API key not valid."}}
            )
        )

        adapter = GeminiAdapter()
        with pytest.raises(UpstreamError) as excinfo:
            await adapter.fetch_usage({"apiKey": "nope"})
        await adapter.close()

        assert excinfo.value.status_code == 400
        assert excinfo.value.message == "API key not valid."

    @pytest.mark.asyncio
    async def test_missing_key(self) -> "None":
        adapter = GeminiAdapter()
        with pytest.raises(CredentialError):
            await adapter.fetch_usage({})
        await adapter.close()
