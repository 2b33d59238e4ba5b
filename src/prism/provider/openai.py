from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import httpx
import structlog

from prism.errors import AdapterError, CredentialError
from prism.models import OPENAI, OpenAIModel, OpenAIUsage
from prism.provider.base import HTTPAdapter

logger = structlog.get_logger()

OPENAI_BASE_URL = "https://api.openai.com/v1"

# model id prefixes a standard key can call for chat
CHAT_MODEL_PREFIXES: "tuple[str, ...]" = ("gpt", "o1", "o3", "chatgpt")
MAX_MODELS = 20

DEFAULT_TIER = "Standard"

USAGE_NOTE = (
    "Historical token usage requires an Admin API key. "
    "Connect an Admin key to see 30-day token breakdowns."
)


def _created_date(created: "Any") -> "str":
    """
    maps a unix timestamp in seconds to a UTC calendar date.
    """
    return datetime.fromtimestamp(int(created or 0), tz=timezone.utc).strftime(
        "%Y-%m-%d"
    )


def select_chat_models(models: "Iterable[Mapping[str, Any]]") -> "list[OpenAIModel]":
    """
    keeps chat model ids, newest first, capped at MAX_MODELS.
    """
    relevant = [
        m for m in models if str(m.get("id") or "").startswith(CHAT_MODEL_PREFIXES)
    ]
    relevant.sort(key=lambda m: m.get("created") or 0, reverse=True)
    return [
        OpenAIModel(
            id=m["id"],
            owned_by=m.get("owned_by") or "",
            created=_created_date(m.get("created")),
        )
        for m in relevant[:MAX_MODELS]
    ]


def tier_from_subscription(subscription: "Mapping[str, Any]") -> "str":
    """
    labels the account from a billing subscription payload. Advisory
    only, the endpoint is legacy and its shape is not guaranteed.
    """
    plan = subscription.get("plan") or {}
    if plan.get("title") or subscription.get("access_until"):
        return "Pay-as-you-go"
    return "Free"


class OpenAIAdapter(HTTPAdapter):
    """
    OpenAIAdapter validates a standard OpenAI key by listing its
    models. Usage history needs an Admin key, so the record carries
    model availability and an advisory account tier.
    """

    provider = OPENAI
    display_name = "OpenAI"

    async def _fetch(self, credential: "Mapping[str, Any]") -> "OpenAIUsage":
        api_key = str(credential.get("apiKey") or "").strip()
        if not api_key:
            raise CredentialError("API key is required")

        headers = {"Authorization": f"Bearer {api_key}"}
        resp = await self._request("GET", f"{OPENAI_BASE_URL}/models", headers=headers)
        models = select_chat_models(self._json_object(resp).get("data") or [])

        tier = await self._resolve_tier(headers)

        logger.info("openai_usage_fetched", models=len(models), tier=tier)
        return OpenAIUsage(
            key_valid=True,
            tier=tier,
            total_models_available=len(models),
            models=models,
            usage_note=USAGE_NOTE,
        )

    async def _resolve_tier(self, headers: "dict[str, str]") -> "str":
        """
        best-effort billing lookup. Any failure keeps the default tier.
        """
        try:
            resp = await self._request(
                "GET",
                f"{OPENAI_BASE_URL}/dashboard/billing/subscription",
                headers=headers,
            )
            subscription = resp.json()
            if not isinstance(subscription, dict):
                return DEFAULT_TIER
            return tier_from_subscription(subscription)
        except (AdapterError, httpx.HTTPError, ValueError) as exc:
            logger.debug("openai_tier_lookup_failed", error_type=type(exc).__name__)
            return DEFAULT_TIER
