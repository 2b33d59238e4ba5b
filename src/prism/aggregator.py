from dataclasses import dataclass, field
from datetime import date
from typing import Any

from prism.config import DEFAULT_GEMINI_TOKEN_SCALE
from prism.models import IntegrationSnapshot
from prism.provider.base import round_half_up

# USD per token, i.e. $3 / $15 per million input / output tokens
INPUT_TOKEN_RATE = 3e-6
OUTPUT_TOKEN_RATE = 15e-6

TREND_DAYS = 7
TOP_MODELS = 5

# weekday() order
DAY_LABELS: "tuple[str, ...]" = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

# illustrative figures shown before anything is connected
SAMPLE_WEEKLY_TREND: "list[dict[str, Any]]" = [
    {"day": "Mon", "Claude": 12000, "Gemini": 4000, "ChatGPT": 8000},
    {"day": "Tue", "Claude": 18000, "Gemini": 8000, "ChatGPT": 11000},
    {"day": "Wed", "Claude": 25000, "Gemini": 6000, "ChatGPT": 15000},
    {"day": "Thu", "Claude": 22000, "Gemini": 10000, "ChatGPT": 9000},
    {"day": "Fri", "Claude": 30000, "Gemini": 12000, "ChatGPT": 20000},
    {"day": "Sat", "Claude": 8000, "Gemini": 2000, "ChatGPT": 5000},
    {"day": "Sun", "Claude": 5000, "Gemini": 1000, "ChatGPT": 2000},
]
SAMPLE_MODELS: "list[dict[str, Any]]" = [
    {"name": "claude-3-5-sonnet", "usage": 35},
    {"name": "gpt-4o", "usage": 30},
    {"name": "claude-3-opus", "usage": 15},
    {"name": "gemini-1.5-pro", "usage": 12},
    {"name": "gpt-4-turbo", "usage": 8},
]
SAMPLE_COST = 45.2
SAMPLE_TOTAL_TOKENS = 2_456_000
SAMPLE_INPUT_TOKENS = 1_800_000
SAMPLE_OUTPUT_TOKENS = 640_000


def _day_label(iso_date: "str") -> "str":
    try:
        return DAY_LABELS[date.fromisoformat(iso_date).weekday()]
    except ValueError:
        return iso_date


def weekly_trend(
    snapshot: "IntegrationSnapshot",
    token_scale: "int" = DEFAULT_GEMINI_TOKEN_SCALE,
) -> "list[dict[str, Any]]":
    """
    returns the last seven days of Claude tokens, one entry per day.
    Gemini request counts, when connected, are multiplied by
    `token_scale` as a rough token estimate for the same day.
    """
    claude = snapshot.claude
    if claude is None:
        return [dict(entry) for entry in SAMPLE_WEEKLY_TREND]

    monitoring = snapshot.gemini_monitoring
    requests_by_date: "dict[str, float]" = {}
    if monitoring is not None:
        requests_by_date = {d.date: d.requests for d in monitoring.daily_trend}

    trend = []
    for day in claude.daily_trend[-TREND_DAYS:]:
        entry: "dict[str, Any]" = {"day": _day_label(day.date), "Claude": day.total}
        if monitoring is not None:
            entry["Gemini"] = round_half_up(
                requests_by_date.get(day.date, 0) * token_scale
            )
        trend.append(entry)
    return trend


def _short_model_name(model: "str") -> "str":
    # "claude-3-5-sonnet-20241022" -> "claude-3-5"
    return "-".join(model.split("-")[:3])


def _placeholder_weights(snapshot: "IntegrationSnapshot") -> "dict[str, float]":
    """
    Gemini and OpenAI carry no token breakdown; list their models
    with declining weights instead.
    """
    names: "list[str]" = []
    if snapshot.gemini is not None:
        names.extend(
            m.name or m.id.split("/")[-1] or m.id for m in snapshot.gemini.models[:3]
        )
    if snapshot.openai is not None:
        names.extend(m.id for m in snapshot.openai.models[:2])

    weights: "dict[str, float]" = {}
    for i, name in enumerate(names):
        weights[name] = 100 - i * 15
    return weights


def model_shares(snapshot: "IntegrationSnapshot") -> "list[dict[str, Any]]":
    """
    returns up to five {name, usage} entries, usage being an integer
    percentage of all tokens, largest first.
    """
    if not snapshot.connected:
        return [dict(entry) for entry in SAMPLE_MODELS]

    combined: "dict[str, float]" = {}
    if snapshot.claude is not None:
        for model, tokens in snapshot.claude.model_breakdown.items():
            short = _short_model_name(model)
            combined[short] = combined.get(short, 0) + tokens.input + tokens.output

    if not combined:
        combined = _placeholder_weights(snapshot)

    total = sum(combined.values()) or 1
    ranked = sorted(combined.items(), key=lambda item: item[1], reverse=True)
    return [
        {"name": name, "usage": round_half_up(value / total * 100)}
        for name, value in ranked[:TOP_MODELS]
    ]


def blended_cost(snapshot: "IntegrationSnapshot") -> "float":
    """
    estimates spend from Claude token counts at blended Sonnet rates.
    Other providers expose no token counts, so they contribute 0.
    """
    if snapshot.claude is not None:
        return (
            snapshot.claude.total_input_tokens * INPUT_TOKEN_RATE
            + snapshot.claude.total_output_tokens * OUTPUT_TOKEN_RATE
        )
    if not snapshot.connected:
        return SAMPLE_COST
    return 0.0


@dataclass(frozen=True, slots=True)
class DashboardView:
    total_tokens: "int"
    total_input_tokens: "int"
    total_output_tokens: "int"
    estimated_cost: "float"
    gemini_requests: "int"
    has_real_data: "bool"
    weekly_trend: "list[dict[str, Any]]" = field(default_factory=list)
    models: "list[dict[str, Any]]" = field(default_factory=list)
    connected: "list[str]" = field(default_factory=list)

    def to_dict(self) -> "dict[str, Any]":
        return {
            "totalTokens": self.total_tokens,
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "estimatedCost": self.estimated_cost,
            "geminiRequests": self.gemini_requests,
            "hasRealData": self.has_real_data,
            "weeklyTrend": self.weekly_trend,
            "models": self.models,
            "connected": self.connected,
        }


def build_dashboard(
    snapshot: "IntegrationSnapshot",
    token_scale: "int" = DEFAULT_GEMINI_TOKEN_SCALE,
) -> "DashboardView":
    connected = snapshot.connected
    claude = snapshot.claude
    if claude is not None:
        totals = (
            claude.total_tokens,
            claude.total_input_tokens,
            claude.total_output_tokens,
        )
    elif connected:
        totals = (0, 0, 0)
    else:
        totals = (SAMPLE_TOTAL_TOKENS, SAMPLE_INPUT_TOKENS, SAMPLE_OUTPUT_TOKENS)

    monitoring = snapshot.gemini_monitoring
    return DashboardView(
        total_tokens=totals[0],
        total_input_tokens=totals[1],
        total_output_tokens=totals[2],
        estimated_cost=blended_cost(snapshot),
        gemini_requests=monitoring.total_requests if monitoring is not None else 0,
        has_real_data=bool(connected),
        weekly_trend=weekly_trend(snapshot, token_scale),
        models=model_shares(snapshot),
        connected=connected,
    )
