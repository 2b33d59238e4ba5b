import time
from typing import Any, Mapping

import structlog

from prism.errors import AdapterError, CredentialError, NetworkError, UpstreamError
from prism.metrics import AdapterMetrics
from prism.models import UsageRecord
from prism.provider.base import UsageAdapter
from prism.store import IntegrationStore

logger = structlog.get_logger()

_OUTCOMES: "dict[type, str]" = {
    CredentialError: "credential_error",
    UpstreamError: "upstream_error",
    NetworkError: "network_error",
}


class UsageService:
    """
    UsageService is the entry point for connecting a provider: it
    runs the provider's adapter, records metrics for the call and,
    when given a store, persists the result for the identity.

    Calls for different providers share no state and may run
    concurrently. Nothing is retried; the caller re-triggers.
    """

    def __init__(
        self,
        adapters: "Mapping[str, UsageAdapter]",
        metrics: "AdapterMetrics",
    ) -> "None":
        self._adapters = dict(adapters)
        self._metrics = metrics

    @property
    def providers(self) -> "list[str]":
        return list(self._adapters)

    async def close(self) -> "None":
        """
        closes all adapter sessions.
        """
        for adapter in self._adapters.values():
            await adapter.close()

    async def fetch_usage(
        self,
        provider: "str",
        credential: "Mapping[str, Any]",
    ) -> "UsageRecord":
        """
        runs the adapter for `provider`. AdapterError subclasses
        propagate to the caller after being counted.
        """
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise KeyError(f"unknown provider {provider!r}")

        started = time.monotonic()
        try:
            record = await adapter.fetch_usage(credential)
        except AdapterError as exc:
            outcome = _OUTCOMES.get(type(exc), "error")
            self._metrics.inc_request(provider, outcome)
            logger.info(
                "usage_fetch_failed",
                provider=provider,
                outcome=outcome,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise
        finally:
            self._metrics.observe_duration(provider, time.monotonic() - started)

        self._metrics.inc_request(provider, "success")
        self._metrics.set_last_success(provider, time.time())
        return record

    async def connect(
        self,
        store: "IntegrationStore",
        identity: "str",
        provider: "str",
        credential: "Mapping[str, Any]",
    ) -> "UsageRecord":
        """
        fetches usage and, only on success, writes it into the store.
        A failed fetch leaves any previous record in place.
        """
        record = await self.fetch_usage(provider, credential)
        store.write(identity, provider, record)
        logger.info("provider_connected", identity=identity, provider=provider)
        return record

    def disconnect(
        self,
        store: "IntegrationStore",
        identity: "str",
        provider: "str",
    ) -> "None":
        store.remove(identity, provider)
        logger.info("provider_disconnected", identity=identity, provider=provider)
