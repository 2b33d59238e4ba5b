from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import httpx
import structlog

from prism.errors import CredentialError
from prism.models import CLAUDE, ClaudeDay, ClaudeUsage, ModelTokens
from prism.provider.base import DailyBuckets, HTTPAdapter, compute_window, date_part

logger = structlog.get_logger()

ANTHROPIC_USAGE_URL = "https://api.anthropic.com/v1/usage/messages"
ANTHROPIC_VERSION = "2023-06-01"


def summarize_buckets(buckets: "Iterable[Mapping[str, Any]]") -> "ClaudeUsage":
    """
    folds daily usage buckets into totals, a per-model breakdown and
    a per-day trend. Buckets that share a start date are merged.
    """
    total_input = 0
    total_output = 0
    per_model: "dict[str, dict[str, int]]" = {}
    days = DailyBuckets("input", "output", "total")

    for bucket in buckets:
        input_tokens = bucket.get("input_tokens") or 0
        output_tokens = bucket.get("output_tokens") or 0
        total_input += input_tokens
        total_output += output_tokens

        model = bucket.get("model") or "unknown"
        entry = per_model.setdefault(model, {"input": 0, "output": 0})
        entry["input"] += input_tokens
        entry["output"] += output_tokens

        days.add(
            date_part(bucket.get("start_time")),
            input=input_tokens,
            output=output_tokens,
            total=input_tokens + output_tokens,
        )

    return ClaudeUsage(
        total_tokens=total_input + total_output,
        total_input_tokens=total_input,
        total_output_tokens=total_output,
        model_breakdown={
            model: ModelTokens(input=v["input"], output=v["output"])
            for model, v in per_model.items()
        },
        daily_trend=[
            ClaudeDay(
                date=day,
                input=int(v["input"]),
                output=int(v["output"]),
                total=int(v["total"]),
            )
            for day, v in days.sorted_days()
        ],
    )


class ClaudeAdapter(HTTPAdapter):
    """
    ClaudeAdapter reads the last 30 days of token usage from the
    Anthropic Admin API. Requires an Admin API key.
    """

    provider = CLAUDE
    display_name = "Anthropic"

    def __init__(
        self,
        client: "httpx.AsyncClient | None" = None,
        timeout: "float" = 10.0,
        clock: "Callable[[], datetime] | None" = None,
    ) -> "None":
        super().__init__(client=client, timeout=timeout)
        self._clock = clock

    async def _fetch(self, credential: "Mapping[str, Any]") -> "ClaudeUsage":
        admin_key = str(credential.get("adminKey") or "").strip()
        if not admin_key:
            raise CredentialError("Admin API key is required")

        window = compute_window(self._clock() if self._clock else None)
        resp = await self._request(
            "GET",
            ANTHROPIC_USAGE_URL,
            params={
                "bucket_width": "1d",
                "starting_at": window.start_iso,
                "ending_at": window.end_iso,
            },
            headers={
                "x-api-key": admin_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
        )

        data = self._json_object(resp)
        usage = summarize_buckets(data.get("data") or [])
        logger.info(
            "claude_usage_fetched",
            days=len(usage.daily_trend),
            models=len(usage.model_breakdown),
            total_tokens=usage.total_tokens,
        )
        return usage
