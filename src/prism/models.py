from dataclasses import dataclass, field, replace
from typing import Any, Union

# provider ids as used by the store and the dashboard
CLAUDE = "claude"
GEMINI = "gemini"
GEMINI_MONITORING = "geminiMonitoring"
OPENAI = "openai"

PROVIDERS: "tuple[str, ...]" = (CLAUDE, GEMINI, GEMINI_MONITORING, OPENAI)


def _int(value: "Any") -> "int":
    return int(value or 0)


@dataclass(frozen=True, slots=True)
class ModelTokens:
    input: "int" = 0
    output: "int" = 0


@dataclass(frozen=True, slots=True)
class ClaudeDay:
    # ISO date, YYYY-MM-DD
    date: "str"
    input: "int"
    output: "int"
    total: "int"


@dataclass(frozen=True, slots=True)
class ClaudeUsage:
    """
    ClaudeUsage is the normalized 30-day token usage of an
    Anthropic organization, aggregated from daily usage buckets.
    """

    total_tokens: "int"
    total_input_tokens: "int"
    total_output_tokens: "int"
    model_breakdown: "dict[str, ModelTokens]" = field(default_factory=dict)
    # sorted ascending by date, one entry per date
    daily_trend: "list[ClaudeDay]" = field(default_factory=list)

    @property
    def provider(self) -> "str":
        return CLAUDE

    def to_dict(self) -> "dict[str, Any]":
        return {
            "provider": "claude",
            "totalTokens": self.total_tokens,
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "modelBreakdown": {
                model: {"input": t.input, "output": t.output}
                for model, t in self.model_breakdown.items()
            },
            "dailyTrend": [
                {
                    "date": d.date,
                    "input": d.input,
                    "output": d.output,
                    "total": d.total,
                }
                for d in self.daily_trend
            ],
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "ClaudeUsage":
        return cls(
            total_tokens=_int(data.get("totalTokens")),
            total_input_tokens=_int(data.get("totalInputTokens")),
            total_output_tokens=_int(data.get("totalOutputTokens")),
            model_breakdown={
                model: ModelTokens(
                    input=_int(t.get("input")), output=_int(t.get("output"))
                )
                for model, t in (data.get("modelBreakdown") or {}).items()
            },
            daily_trend=[
                ClaudeDay(
                    date=d.get("date", ""),
                    input=_int(d.get("input")),
                    output=_int(d.get("output")),
                    total=_int(d.get("total")),
                )
                for d in data.get("dailyTrend") or []
            ],
        )


@dataclass(frozen=True, slots=True)
class GeminiModel:
    # full resource name, e.g. "models/gemini-1.5-pro"
    id: "str"
    name: "str"
    input_token_limit: "int" = 0
    output_token_limit: "int" = 0


@dataclass(frozen=True, slots=True)
class GeminiUsage:
    """
    GeminiUsage describes what a Gemini API key can reach. AI Studio
    has no public usage history, so this is a capability snapshot.
    """

    key_valid: "bool"
    total_models_available: "int"
    models: "list[GeminiModel]" = field(default_factory=list)
    live_token_count: "int | None" = None
    note: "str" = ""

    @property
    def provider(self) -> "str":
        return GEMINI

    def to_dict(self) -> "dict[str, Any]":
        return {
            "provider": "gemini",
            "keyValid": self.key_valid,
            "totalModelsAvailable": self.total_models_available,
            "models": [
                {
                    "id": m.id,
                    "name": m.name,
                    "inputTokenLimit": m.input_token_limit,
                    "outputTokenLimit": m.output_token_limit,
                }
                for m in self.models
            ],
            "liveTokenCount": self.live_token_count,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "GeminiUsage":
        return cls(
            key_valid=bool(data.get("keyValid", False)),
            total_models_available=_int(data.get("totalModelsAvailable")),
            models=[
                GeminiModel(
                    id=m.get("id", ""),
                    name=m.get("name", ""),
                    input_token_limit=_int(m.get("inputTokenLimit")),
                    output_token_limit=_int(m.get("outputTokenLimit")),
                )
                for m in data.get("models") or []
            ],
            live_token_count=data.get("liveTokenCount"),
            note=data.get("note", ""),
        )


@dataclass(frozen=True, slots=True)
class MonitoringDay:
    date: "str"
    # unrounded; Cloud Monitoring rates are fractional
    requests: "float"


@dataclass(frozen=True, slots=True)
class GeminiMonitoringUsage:
    """
    GeminiMonitoringUsage holds 30 days of Generative Language API
    request counts read from Google Cloud Monitoring.
    """

    total_requests: "int"
    project_id: "str"
    daily_trend: "list[MonitoringDay]" = field(default_factory=list)
    # number of time series returned by each query
    raw_time_series: "int" = 0
    token_series: "int" = 0
    note: "str" = ""

    @property
    def provider(self) -> "str":
        return GEMINI_MONITORING

    def to_dict(self) -> "dict[str, Any]":
        return {
            "provider": "gemini-monitoring",
            "projectId": self.project_id,
            "totalRequests": self.total_requests,
            "dailyTrend": [
                {"date": d.date, "requests": d.requests} for d in self.daily_trend
            ],
            "rawTimeSeries": self.raw_time_series,
            "tokenSeries": self.token_series,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "GeminiMonitoringUsage":
        return cls(
            total_requests=_int(data.get("totalRequests")),
            project_id=data.get("projectId", ""),
            daily_trend=[
                MonitoringDay(
                    date=d.get("date", ""), requests=float(d.get("requests") or 0)
                )
                for d in data.get("dailyTrend") or []
            ],
            raw_time_series=_int(data.get("rawTimeSeries")),
            token_series=_int(data.get("tokenSeries")),
            note=data.get("note", ""),
        )


@dataclass(frozen=True, slots=True)
class OpenAIModel:
    id: "str"
    owned_by: "str"
    # creation date, YYYY-MM-DD (UTC)
    created: "str"

    @property
    def name(self) -> "str":
        return self.id


@dataclass(frozen=True, slots=True)
class OpenAIUsage:
    """
    OpenAIUsage is what a standard (non-admin) OpenAI key exposes:
    key validity, an advisory tier label and the callable chat models.
    """

    key_valid: "bool"
    tier: "str"
    total_models_available: "int"
    models: "list[OpenAIModel]" = field(default_factory=list)
    usage_note: "str" = ""

    @property
    def provider(self) -> "str":
        return OPENAI

    def to_dict(self) -> "dict[str, Any]":
        return {
            "provider": "openai",
            "keyValid": self.key_valid,
            "tier": self.tier,
            "totalModelsAvailable": self.total_models_available,
            "models": [
                {
                    "id": m.id,
                    "name": m.name,
                    "ownedBy": m.owned_by,
                    "created": m.created,
                }
                for m in self.models
            ],
            "usageNote": self.usage_note,
        }

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "OpenAIUsage":
        return cls(
            key_valid=bool(data.get("keyValid", False)),
            tier=data.get("tier", "Standard"),
            total_models_available=_int(data.get("totalModelsAvailable")),
            models=[
                OpenAIModel(
                    id=m.get("id", ""),
                    owned_by=m.get("ownedBy", ""),
                    created=m.get("created", ""),
                )
                for m in data.get("models") or []
            ],
            usage_note=data.get("usageNote", ""),
        )


def _attr(provider: "str") -> "str":
    return "gemini_monitoring" if provider == GEMINI_MONITORING else provider


UsageRecord = Union[ClaudeUsage, GeminiUsage, GeminiMonitoringUsage, OpenAIUsage]

RECORD_TYPES: "dict[str, type]" = {
    CLAUDE: ClaudeUsage,
    GEMINI: GeminiUsage,
    GEMINI_MONITORING: GeminiMonitoringUsage,
    OPENAI: OpenAIUsage,
}


def record_from_dict(provider: "str", data: "dict[str, Any]") -> "UsageRecord":
    """
    rebuilds the provider's record type from its JSON form.
    """
    return RECORD_TYPES[provider].from_dict(data)


@dataclass(frozen=True, slots=True)
class IntegrationSnapshot:
    """
    IntegrationSnapshot is the state of all four integrations for
    one identity. A provider is connected when its record is not None.
    """

    claude: "ClaudeUsage | None" = None
    gemini: "GeminiUsage | None" = None
    gemini_monitoring: "GeminiMonitoringUsage | None" = None
    openai: "OpenAIUsage | None" = None

    def get(self, provider: "str") -> "UsageRecord | None":
        return getattr(self, _attr(provider))

    def with_record(
        self, provider: "str", record: "UsageRecord | None"
    ) -> "IntegrationSnapshot":
        """
        returns a copy with one provider's record swapped.
        """
        return replace(self, **{_attr(provider): record})

    @property
    def connected(self) -> "list[str]":
        return [p for p in PROVIDERS if self.get(p) is not None]

    def to_dict(self) -> "dict[str, Any]":
        out: "dict[str, Any]" = {}
        for p in PROVIDERS:
            record = self.get(p)
            out[p] = record.to_dict() if record is not None else None
        return out

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "IntegrationSnapshot":
        records: "dict[str, Any]" = {}
        for p in PROVIDERS:
            raw = data.get(p)
            records[_attr(p)] = record_from_dict(p, raw) if raw else None
        return cls(**records)
