import pytest
from prometheus_client import CollectorRegistry

from prism.models import (
    ClaudeDay,
    ClaudeUsage,
    GeminiModel,
    GeminiMonitoringUsage,
    GeminiUsage,
    ModelTokens,
    MonitoringDay,
    OpenAIModel,
    OpenAIUsage,
)
from prism.store import IntegrationStore, MemoryBackend


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def backend() -> "MemoryBackend":
    return MemoryBackend()


@pytest.fixture()
def store(backend: "MemoryBackend") -> "IntegrationStore":
    return IntegrationStore(backend)


@pytest.fixture()
def claude_usage() -> "ClaudeUsage":
    return ClaudeUsage(
        total_tokens=1650,
        total_input_tokens=1100,
        total_output_tokens=550,
        model_breakdown={
            "claude-3-opus-20240229": ModelTokens(input=600, output=300),
            "claude-3-5-sonnet-20241022": ModelTokens(input=500, output=250),
        },
        daily_trend=[
            ClaudeDay(date="2024-01-01", input=600, output=300, total=900),
            ClaudeDay(date="2024-01-02", input=500, output=250, total=750),
        ],
    )


@pytest.fixture()
def gemini_usage() -> "GeminiUsage":
    return GeminiUsage(
        key_valid=True,
        total_models_available=4,
        models=[
            GeminiModel(id="models/gemini-1.5-pro", name="Gemini 1.5 Pro"),
            GeminiModel(id="models/gemini-1.5-flash", name=""),
            GeminiModel(id="models/gemini-1.0-pro", name="Gemini 1.0 Pro"),
            GeminiModel(id="models/gemini-2.0-flash", name="Gemini 2.0 Flash"),
        ],
        live_token_count=2,
    )


@pytest.fixture()
def monitoring_usage() -> "GeminiMonitoringUsage":
    return GeminiMonitoringUsage(
        total_requests=15,
        project_id="my-project",
        daily_trend=[
            MonitoringDay(date="2024-01-01", requests=12.0),
            MonitoringDay(date="2024-01-03", requests=3.0),
        ],
    )


@pytest.fixture()
def openai_usage() -> "OpenAIUsage":
    return OpenAIUsage(
        key_valid=True,
        tier="Standard",
        total_models_available=3,
        models=[
            OpenAIModel(id="gpt-4o", owned_by="system", created="2024-05-10"),
            OpenAIModel(id="o1-mini", owned_by="system", created="2024-09-12"),
            OpenAIModel(id="gpt-4-turbo", owned_by="system", created="2024-04-09"),
        ],
    )
