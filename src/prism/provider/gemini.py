from typing import Any, Iterable, Mapping

import httpx
import structlog

from prism.errors import AdapterError, CredentialError
from prism.models import GEMINI, GeminiModel, GeminiUsage
from prism.provider.base import HTTPAdapter

logger = structlog.get_logger()

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# small model used to prove the key is live
PROBE_MODEL = "gemini-1.5-flash"
PROBE_TEXT = "Hello"
# number of models returned with details
MAX_MODEL_DETAILS = 6

GEMINI_NOTE = (
    "Google AI Studio does not expose historical usage via public API. "
    "Showing model capabilities and key validity. "
    "Enable Google Cloud Monitoring for full usage metrics."
)


def select_gemini_models(
    models: "Iterable[Mapping[str, Any]]",
) -> "tuple[int, list[GeminiModel]]":
    """
    keeps entries whose name contains "gemini". Returns the number
    of matches and the details of the first few.
    """
    matches = [m for m in models if "gemini" in (m.get("name") or "")]
    details = [
        GeminiModel(
            id=m.get("name") or "",
            name=m.get("displayName") or m.get("name") or "",
            input_token_limit=m.get("inputTokenLimit") or 0,
            output_token_limit=m.get("outputTokenLimit") or 0,
        )
        for m in matches[:MAX_MODEL_DETAILS]
    ]
    return len(matches), details


class GeminiAdapter(HTTPAdapter):
    """
    GeminiAdapter validates a Gemini API key by listing the models it
    can reach, then counts tokens on a fixed prompt as a liveness probe.
    """

    provider = GEMINI
    display_name = "Gemini"

    async def _fetch(self, credential: "Mapping[str, Any]") -> "GeminiUsage":
        api_key = str(credential.get("apiKey") or "").strip()
        if not api_key:
            raise CredentialError("Gemini API key is required")

        resp = await self._request(
            "GET",
            f"{GEMINI_BASE_URL}/models",
            params={"key": api_key, "pageSize": 50},
        )
        data = self._json_object(resp)
        total, models = select_gemini_models(data.get("models") or [])

        live_token_count = await self._probe_token_count(api_key)

        logger.info(
            "gemini_usage_fetched",
            models_available=total,
            live=live_token_count is not None,
        )
        return GeminiUsage(
            key_valid=True,
            total_models_available=total,
            models=models,
            live_token_count=live_token_count,
            note=GEMINI_NOTE,
        )

    async def _probe_token_count(self, api_key: "str") -> "int | None":
        """
        best-effort countTokens call. Any failure yields None.
        """
        try:
            resp = await self._request(
                "POST",
                f"{GEMINI_BASE_URL}/models/{PROBE_MODEL}:countTokens",
                params={"key": api_key},
                json={"contents": [{"parts": [{"text": PROBE_TEXT}]}]},
            )
            return self._json_object(resp).get("totalTokens")
        except (AdapterError, httpx.HTTPError, ValueError) as exc:
            logger.debug("gemini_token_probe_failed", error_type=type(exc).__name__)
            return None
