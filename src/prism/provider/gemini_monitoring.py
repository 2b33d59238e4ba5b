import asyncio
import json
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Mapping

import google.auth.exceptions
import google.auth.transport.requests
import httpx
import structlog
from google.oauth2 import service_account

from prism.errors import AdapterError, CredentialError, NetworkError
from prism.models import GEMINI_MONITORING, GeminiMonitoringUsage, MonitoringDay
from prism.provider.base import (
    DailyBuckets,
    HTTPAdapter,
    UsageWindow,
    compute_window,
    date_part,
    round_half_up,
)

logger = structlog.get_logger()

MONITORING_SCOPE = "https://www.googleapis.com/auth/monitoring.read"
MONITORING_BASE_URL = "https://monitoring.googleapis.com/v3"
MONITORED_SERVICE = "generativelanguage.googleapis.com"

REQUEST_COUNT_METRIC = "serviceruntime.googleapis.com/api/request_count"
NET_USAGE_METRIC = "serviceruntime.googleapis.com/quota/rate/net_usage"

MONITORING_NOTE = (
    "Request counts sourced from Google Cloud Monitoring (serviceruntime API). "
    "Token-level granularity requires Vertex AI."
)

TokenProvider = Callable[[dict], Awaitable[str]]


def _exchange_token(info: "dict[str, Any]") -> "str":
    credentials = service_account.Credentials.from_service_account_info(
        info, scopes=[MONITORING_SCOPE]
    )
    credentials.refresh(google.auth.transport.requests.Request())
    return credentials.token


async def service_account_token(info: "dict[str, Any]") -> "str":
    """
    exchanges service account info for a read-only monitoring bearer
    token. google-auth is blocking, so the exchange runs in a thread.
    """
    return await asyncio.to_thread(_exchange_token, info)


def parse_service_account(raw: "Any") -> "dict[str, Any]":
    """
    accepts the service account as a JSON string or a parsed object.
    """
    if isinstance(raw, Mapping):
        return dict(raw)
    try:
        info = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise CredentialError("Invalid service account JSON") from exc
    if not isinstance(info, dict):
        raise CredentialError("Invalid service account JSON")
    return info


def point_value(point: "Mapping[str, Any]") -> "float":
    """
    reads a point's numeric value. Rates arrive as doubleValue,
    counts as int64Value encoded as a string.
    """
    value = point.get("value") or {}
    raw = value.get("doubleValue")
    if raw is None:
        raw = value.get("int64Value")
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


def summarize_time_series(
    series: "Iterable[Mapping[str, Any]]",
) -> "tuple[int, list[MonitoringDay]]":
    """
    buckets every point by the date of its interval start. The total
    is rounded once at the end, not per bucket.
    """
    days = DailyBuckets("requests")
    for ts in series:
        for point in ts.get("points") or []:
            interval = point.get("interval") or {}
            days.add(date_part(interval.get("startTime")), requests=point_value(point))

    trend = [
        MonitoringDay(date=day, requests=v["requests"]) for day, v in days.sorted_days()
    ]
    return round_half_up(days.total("requests")), trend


class GeminiMonitoringAdapter(HTTPAdapter):
    """
    GeminiMonitoringAdapter reads Generative Language API request
    counts from Google Cloud Monitoring with a service account.
    """

    provider = GEMINI_MONITORING
    display_name = "Cloud Monitoring"

    def __init__(
        self,
        client: "httpx.AsyncClient | None" = None,
        timeout: "float" = 10.0,
        clock: "Callable[[], datetime] | None" = None,
        token_provider: "TokenProvider | None" = None,
    ) -> "None":
        super().__init__(client=client, timeout=timeout)
        self._clock = clock
        self._token_provider = token_provider or service_account_token

    async def _fetch(self, credential: "Mapping[str, Any]") -> "GeminiMonitoringUsage":
        raw_account = credential.get("serviceAccountJson")
        project_id = str(credential.get("projectId") or "").strip()
        if not raw_account or not project_id:
            raise CredentialError("Both serviceAccountJson and projectId are required")

        info = parse_service_account(raw_account)
        token = await self._access_token(info)
        headers = {"Authorization": f"Bearer {token}"}
        window = compute_window(self._clock() if self._clock else None)

        request_series = await self._query(
            project_id,
            REQUEST_COUNT_METRIC,
            window,
            headers,
            {
                "aggregation.crossSeriesReducer": "REDUCE_SUM",
                "aggregation.groupByFields": "metric.labels.method",
            },
        )

        # token usage is informational only, so a failure here
        # leaves the request counts intact
        try:
            token_series = await self._query(
                project_id, NET_USAGE_METRIC, window, headers
            )
        except (AdapterError, httpx.HTTPError, ValueError) as exc:
            logger.debug(
                "monitoring_token_query_failed", error_type=type(exc).__name__
            )
            token_series = []

        total, trend = summarize_time_series(request_series)
        logger.info(
            "gemini_monitoring_usage_fetched",
            project_id=project_id,
            days=len(trend),
            total_requests=total,
        )
        return GeminiMonitoringUsage(
            total_requests=total,
            project_id=project_id,
            daily_trend=trend,
            raw_time_series=len(request_series),
            token_series=len(token_series),
            note=MONITORING_NOTE,
        )

    async def _access_token(self, info: "dict[str, Any]") -> "str":
        try:
            token = await self._token_provider(info)
        except ValueError as exc:
            # google-auth rejects service account info missing its fields
            raise CredentialError(f"Invalid service account JSON: {exc}") from exc
        except google.auth.exceptions.GoogleAuthError as exc:
            logger.warning("monitoring_token_exchange_failed", error=str(exc))
            raise NetworkError(str(exc)) from exc
        if not token:
            raise NetworkError("Failed to obtain access token")
        return token

    async def _query(
        self,
        project_id: "str",
        metric: "str",
        window: "UsageWindow",
        headers: "dict[str, str]",
        extra: "dict[str, str] | None" = None,
    ) -> "list[dict[str, Any]]":
        params = {
            "filter": (
                f'metric.type="{metric}" AND '
                f'resource.labels.service="{MONITORED_SERVICE}"'
            ),
            "interval.startTime": window.start_iso,
            "interval.endTime": window.end_iso,
            "aggregation.alignmentPeriod": "86400s",
            "aggregation.perSeriesAligner": "ALIGN_RATE",
        }
        params.update(extra or {})
        resp = await self._request(
            "GET",
            f"{MONITORING_BASE_URL}/projects/{project_id}/timeSeries",
            params=params,
            headers=headers,
        )
        return self._json_object(resp).get("timeSeries") or []

    def _upstream_message(self, resp: "httpx.Response") -> "str":
        return f"Cloud Monitoring API error ({resp.status_code}): {resp.text}"
