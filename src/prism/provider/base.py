import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Protocol

import httpx
import structlog

from prism.errors import AdapterError, NetworkError, UpstreamError
from prism.models import UsageRecord

logger = structlog.get_logger()

# every adapter looks back this many days
DEFAULT_WINDOW_DAYS = 30


class UsageAdapter(Protocol):
    """
    UsageAdapter stands as the common protocol that all
    provider adapters satisfy.

    An adapter takes a request-scoped credential, calls its provider
    and returns the provider's normalized UsageRecord.
    """

    @property
    def name(self) -> "str": ...

    async def fetch_usage(self, credential: "Mapping[str, Any]") -> "UsageRecord": ...

    async def close(self) -> "None": ...


@dataclass(frozen=True, slots=True)
class UsageWindow:
    start: "datetime"
    end: "datetime"

    @property
    def start_iso(self) -> "str":
        return _format_utc(self.start)

    @property
    def end_iso(self) -> "str":
        return _format_utc(self.end)


def _format_utc(moment: "datetime") -> "str":
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def compute_window(
    now: "datetime | None" = None,
    days: "int" = DEFAULT_WINDOW_DAYS,
) -> "UsageWindow":
    """
    returns the window of the last `days` days ending at `now`,
    truncated to whole seconds.
    """
    end = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    return UsageWindow(start=end - timedelta(days=days), end=end)


def round_half_up(value: "float") -> "int":
    """
    rounds .5 away from zero for positive values, unlike round()
    which rounds to even.
    """
    return math.floor(value + 0.5)


def date_part(timestamp: "str | None") -> "str":
    """
    returns the YYYY-MM-DD portion of an ISO timestamp.
    """
    return (timestamp or "").split("T")[0]


class DailyBuckets:
    """
    DailyBuckets sums named values per calendar day. Adding to a day
    that already exists merges into it, so each date appears once.
    """

    def __init__(self, *fields: "str") -> "None":
        self._fields = fields
        self._days: "dict[str, dict[str, float]]" = {}

    def add(self, day: "str", **values: "float") -> "None":
        bucket = self._days.get(day)
        if bucket is None:
            bucket = dict.fromkeys(self._fields, 0)
            self._days[day] = bucket
        for key, value in values.items():
            bucket[key] += value

    def sorted_days(self) -> "list[tuple[str, dict[str, float]]]":
        """
        returns (date, values) pairs ascending by date. ISO dates
        sort correctly as strings.
        """
        return sorted(self._days.items(), key=lambda item: item[0])

    def total(self, field: "str") -> "float":
        return sum(bucket[field] for bucket in self._days.values())

    def __len__(self) -> "int":
        return len(self._days)


class HTTPAdapter:
    """
    HTTPAdapter holds what all provider adapters share: the HTTP
    client and the mapping of transport failures and non-2xx
    responses onto AdapterError subclasses.

    Subclasses set `provider`/`display_name` and implement `_fetch`.
    """

    provider: "str" = ""
    # used in generic error messages, e.g. "OpenAI API error: 401"
    display_name: "str" = ""

    def __init__(
        self,
        client: "httpx.AsyncClient | None" = None,
        timeout: "float" = 10.0,
    ) -> "None":
        self._owns_client = client is None
        self._client: "httpx.AsyncClient" = client or httpx.AsyncClient(
            timeout=timeout
        )

    @property
    def name(self) -> "str":
        return self.provider

    async def close(self) -> "None":
        """
        closes the underlying HTTP client if this adapter created it.
        """
        if self._owns_client:
            await self._client.aclose()

    async def fetch_usage(self, credential: "Mapping[str, Any]") -> "UsageRecord":
        try:
            return await self._fetch(credential)
        except AdapterError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            # ValueError: a 2xx answer whose body is not a JSON object
            logger.warning(
                "adapter_transport_error",
                provider=self.provider,
                error_type=type(exc).__name__,
            )
            raise NetworkError(f"Failed to connect to {self.display_name} API") from exc

    async def _fetch(self, credential: "Mapping[str, Any]") -> "UsageRecord":
        raise NotImplementedError

    async def _request(
        self,
        method: "str",
        url: "str",
        **kwargs: "Any",
    ) -> "httpx.Response":
        """
        sends a request and raises UpstreamError on any non-2xx answer.
        """
        resp = await self._client.request(method, url, **kwargs)
        if not resp.is_success:
            raise UpstreamError(self._upstream_message(resp), resp.status_code)
        return resp

    @staticmethod
    def _json_object(resp: "httpx.Response") -> "dict[str, Any]":
        """
        returns the response body as a JSON object. A body that is not
        JSON or not an object raises ValueError.
        """
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        return body

    def _upstream_message(self, resp: "httpx.Response") -> "str":
        """
        extracts the provider's own `error.message`, falling back to a
        generic message with the status code.
        """
        try:
            body = resp.json()
        except ValueError:
            body = None

        message = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
        return message or f"{self.display_name} API error: {resp.status_code}"
