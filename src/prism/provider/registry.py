import httpx

from prism.config import Config
from prism.models import CLAUDE, GEMINI, GEMINI_MONITORING, OPENAI
from prism.provider.base import UsageAdapter
from prism.provider.claude import ClaudeAdapter
from prism.provider.gemini import GeminiAdapter
from prism.provider.gemini_monitoring import GeminiMonitoringAdapter
from prism.provider.openai import OpenAIAdapter

ADAPTER_TYPES: "dict[str, type]" = {
    CLAUDE: ClaudeAdapter,
    GEMINI: GeminiAdapter,
    GEMINI_MONITORING: GeminiMonitoringAdapter,
    OPENAI: OpenAIAdapter,
}


def build_adapters(
    config: "Config",
    client: "httpx.AsyncClient | None" = None,
) -> "dict[str, UsageAdapter]":
    """
    creates one adapter per provider. With a shared client the
    adapters leave closing it to the caller.
    """
    return {
        provider: adapter_type(client=client, timeout=config.http_timeout)
        for provider, adapter_type in ADAPTER_TYPES.items()
    }
