import json
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

import structlog

from prism.models import (
    CLAUDE,
    GEMINI,
    GEMINI_MONITORING,
    OPENAI,
    PROVIDERS,
    IntegrationSnapshot,
    UsageRecord,
    record_from_dict,
)

logger = structlog.get_logger()

# (key, origin) - origin is whoever made the change, None if unknown
ChangeListener = Callable[[str, object], None]

# per-provider suffix used in storage keys
PROVIDER_SLUGS: "dict[str, str]" = {
    CLAUDE: "claude",
    GEMINI: "gemini",
    GEMINI_MONITORING: "gemini-monitoring",
    OPENAI: "openai",
}
_SLUG_PROVIDERS: "dict[str, str]" = {v: k for k, v in PROVIDER_SLUGS.items()}


class StorageBackend(Protocol):
    """
    StorageBackend is a string key-value space shared by every store
    attached to it, the way browser tabs share localStorage. Watchers
    are told about every change together with the change's origin.
    """

    def get(self, key: "str") -> "str | None": ...

    def set(self, key: "str", value: "str", origin: "object" = None) -> "None": ...

    def delete(self, key: "str", origin: "object" = None) -> "None": ...

    def watch(self, listener: "ChangeListener") -> "Callable[[], None]": ...


class MemoryBackend:
    """
    MemoryBackend: Is a thread-safe in-process key-value space.

    Listeners are invoked outside the lock so they may read the
    backend again. A listener that raises is logged and skipped.
    Deleting a missing key changes nothing and notifies nobody.
    """

    def __init__(self) -> "None":
        self._lock: "threading.Lock" = threading.Lock()
        self._data: "dict[str, str]" = {}
        self._listeners: "list[ChangeListener]" = []

    def get(self, key: "str") -> "str | None":
        with self._lock:
            return self._data.get(key)

    def set(self, key: "str", value: "str", origin: "object" = None) -> "None":
        with self._lock:
            self._data[key] = value
            self._persist()
            listeners = list(self._listeners)
        self._dispatch(listeners, key, origin)

    def delete(self, key: "str", origin: "object" = None) -> "None":
        with self._lock:
            if key not in self._data:
                return
            del self._data[key]
            self._persist()
            listeners = list(self._listeners)
        self._dispatch(listeners, key, origin)

    def _dispatch(
        self, listeners: "list[ChangeListener]", key: "str", origin: "object"
    ) -> "None":
        # a failing listener does not stop the others or the writer
        for listener in listeners:
            try:
                listener(key, origin)
            except Exception:
                logger.exception("store_listener_failed", key=key)

    def keys(self) -> "list[str]":
        with self._lock:
            return list(self._data)

    def watch(self, listener: "ChangeListener") -> "Callable[[], None]":
        """
        registers a change listener. Returns a function that removes it.
        """
        with self._lock:
            self._listeners.append(listener)

        def unwatch() -> "None":
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unwatch

    def _persist(self) -> "None":
        """
        hook called under the lock after every change.
        """


class JsonFileBackend(MemoryBackend):
    """
    JsonFileBackend keeps the key space in memory and mirrors it to a
    single JSON file after every change, so it survives restarts.
    A missing or unreadable file starts an empty space.
    """

    def __init__(self, path: "str | Path") -> "None":
        super().__init__()
        self._path = Path(path)
        self._data = self._load()

    def _load(self) -> "dict[str, str]":
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("store_file_unreadable", path=str(self._path))
            return {}
        if not isinstance(data, dict):
            logger.warning("store_file_unreadable", path=str(self._path))
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _persist(self) -> "None":
        # write then rename so readers never see a half-written file
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self._path)


@dataclass(frozen=True, slots=True)
class StoreChange:
    """
    StoreChange is delivered to subscribers after a write or remove.
    snapshot already reflects the change.
    """

    identity: "str"
    providers: "frozenset[str]"
    snapshot: "IntegrationSnapshot"


Subscriber = Callable[[StoreChange], None]


class _Subscription:
    def __init__(self, callback: "Subscriber", snapshot: "IntegrationSnapshot") -> "None":
        self.callback = callback
        self.snapshot = snapshot


class IntegrationStore:
    """
    IntegrationStore keeps the last normalized UsageRecord per
    provider for each identity, on top of a StorageBackend.

    Keys are namespaced as "<prefix>:<identity>:<provider-slug>:data",
    with a companion ":key" entry for the raw credential. Several
    stores sharing one backend see each other's changes; within a
    store, subscribers are notified directly. Concurrent writers are
    not coordinated: the last write wins.
    """

    def __init__(self, backend: "StorageBackend", prefix: "str" = "prism") -> "None":
        self._backend = backend
        self._prefix = prefix
        self._lock: "threading.Lock" = threading.Lock()
        self._subscriptions: "dict[str, list[_Subscription]]" = {}
        self._unwatch = backend.watch(self._on_backend_change)

    def close(self) -> "None":
        """
        stops listening to the backend.
        """
        self._unwatch()

    def data_key(self, identity: "str", provider: "str") -> "str":
        return f"{self._prefix}:{identity}:{PROVIDER_SLUGS[provider]}:data"

    def credential_key(self, identity: "str", provider: "str") -> "str":
        return f"{self._prefix}:{identity}:{PROVIDER_SLUGS[provider]}:key"

    def read(self, identity: "str", provider: "str") -> "UsageRecord | None":
        """
        returns the stored record, or None when it is missing or
        cannot be parsed.
        """
        if not identity:
            return None
        raw = self._backend.get(self.data_key(identity, provider))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("record is not an object")
            return record_from_dict(provider, data)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning(
                "store_record_corrupt",
                identity=identity,
                provider=provider,
                error=str(exc),
            )
            return None

    def read_all(self, identity: "str") -> "IntegrationSnapshot":
        """
        reads every provider independently; one corrupt entry does
        not affect the others.
        """
        snapshot = IntegrationSnapshot()
        if not identity:
            return snapshot
        for provider in PROVIDERS:
            snapshot = snapshot.with_record(provider, self.read(identity, provider))
        return snapshot

    def write(
        self,
        identity: "str",
        provider: "str",
        record: "UsageRecord",
        raw_credential: "str" = "",
    ) -> "None":
        _check(identity, provider)
        if record.provider != provider:
            raise ValueError(
                f"record for {record.provider!r} cannot be stored as {provider!r}"
            )
        self._backend.set(
            self.credential_key(identity, provider), raw_credential, origin=self
        )
        self._backend.set(
            self.data_key(identity, provider),
            json.dumps(record.to_dict()),
            origin=self,
        )
        logger.debug("store_record_written", identity=identity, provider=provider)
        self._notify(identity, provider)

    def remove(self, identity: "str", provider: "str") -> "None":
        """
        deletes the record and its credential entry. Removing an
        absent record is a no-op apart from the notification.
        """
        _check(identity, provider)
        self._backend.delete(self.data_key(identity, provider), origin=self)
        self._backend.delete(self.credential_key(identity, provider), origin=self)
        logger.debug("store_record_removed", identity=identity, provider=provider)
        self._notify(identity, provider)

    def subscribe(
        self, identity: "str", callback: "Subscriber"
    ) -> "Callable[[], None]":
        """
        calls `callback` with a StoreChange whenever a record of
        `identity` changes, from this store or another store on the
        same backend. Returns a function that cancels the subscription.
        """
        subscription = _Subscription(callback, self.read_all(identity))
        with self._lock:
            self._subscriptions.setdefault(identity, []).append(subscription)

        def unsubscribe() -> "None":
            with self._lock:
                subs = self._subscriptions.get(identity, [])
                if subscription in subs:
                    subs.remove(subscription)
                if not subs:
                    self._subscriptions.pop(identity, None)

        return unsubscribe

    def _on_backend_change(self, key: "str", origin: "object") -> "None":
        # our own writes are announced by write()/remove()
        if origin is self:
            return
        parsed = self._parse_data_key(key)
        if parsed is None:
            return
        self._notify(*parsed)

    def _parse_data_key(self, key: "str") -> "tuple[str, str] | None":
        head = f"{self._prefix}:"
        if not key.startswith(head) or not key.endswith(":data"):
            return None
        identity, _, slug = key[len(head) : -len(":data")].rpartition(":")
        provider = _SLUG_PROVIDERS.get(slug)
        if not identity or provider is None:
            return None
        return identity, provider

    def _notify(self, identity: "str", provider: "str") -> "None":
        with self._lock:
            subs = list(self._subscriptions.get(identity, []))
        if not subs:
            return

        # only the changed provider is re-read
        record = self.read(identity, provider)
        for sub in subs:
            sub.snapshot = sub.snapshot.with_record(provider, record)
            change = StoreChange(
                identity=identity,
                providers=frozenset({provider}),
                snapshot=sub.snapshot,
            )
            try:
                sub.callback(change)
            except Exception:
                logger.exception(
                    "store_subscriber_failed", identity=identity, provider=provider
                )


def _check(identity: "str", provider: "str") -> "None":
    if not identity:
        raise ValueError("identity is required")
    if provider not in PROVIDER_SLUGS:
        raise ValueError(f"unknown provider {provider!r}")
