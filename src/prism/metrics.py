from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class AdapterMetrics:
    """
    records the outcome and duration of every provider adapter call.
     - requests_total: counts adapter calls, labeled by provider and
     outcome (success, credential_error, upstream_error, network_error).
     - duration_seconds: duration of each call, labeled by provider.
     - last_success: unix timestamp of the last successful call.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._requests: "Counter" = Counter(
            "prism_adapter_requests_total",
            "Total provider adapter calls by provider and outcome",
            ["provider", "outcome"],
            registry=registry,
        )
        self._duration: "Histogram" = Histogram(
            "prism_adapter_duration_seconds",
            "Duration of provider adapter calls",
            ["provider"],
            registry=registry,
        )
        self._last_success: "Gauge" = Gauge(
            "prism_adapter_last_success_timestamp_seconds",
            "Unix timestamp of last successful adapter call per provider",
            ["provider"],
            registry=registry,
        )

    @property
    def registry(self) -> "CollectorRegistry":
        return self._registry

    def inc_request(self, provider: "str", outcome: "str") -> "None":
        self._requests.labels(provider=provider, outcome=outcome).inc()

    def observe_duration(self, provider: "str", duration_seconds: "float") -> "None":
        self._duration.labels(provider=provider).observe(duration_seconds)

    def set_last_success(self, provider: "str", timestamp: "float") -> "None":
        self._last_success.labels(provider=provider).set(timestamp)
