"""Capability registry: known connectors, which are enabled, and their health."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List
import logging
import threading
import time

from chatia.errors import ProviderNotFoundError, ProviderTimeoutError
from chatia.providers.base import Connector, wait_until
from chatia.types import CapabilityDescriptor

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    connector: Connector
    descriptor: CapabilityDescriptor


class CapabilityRegistry:
    """Process-wide set of connectors, safe to mutate while requests resolve.

    Every read takes a snapshot under the lock, so a resolve never observes a
    half-applied enable/disable. No lock is held while a connector runs.
    """

    def __init__(self, health_timeout_ms: int = 5000) -> None:
        self.health_timeout_ms = health_timeout_ms
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Any, connectors: Iterable[Connector]) -> "CapabilityRegistry":
        """Register ``connectors`` and apply the initial enablement policy.

        With an allow-list configured only the listed names are enabled;
        otherwise a connector is enabled when its credential is present.
        """
        registry = cls(health_timeout_ms=config.health_timeout_ms)
        for connector in connectors:
            registry.register(connector)
        allow_list = config.enabled_providers
        if allow_list:
            for name in allow_list:
                if not registry.enable(name):
                    logger.warning(f"Allow-listed provider {name!r} is not registered")
        else:
            for connector in registry.connectors():
                if connector.available:
                    registry.enable(connector.name)
        enabled = [d.name for d in registry.descriptors() if d.enabled]
        logger.info(f"Enabled providers: {', '.join(enabled) or 'none'}")
        return registry

    def register(self, connector: Connector) -> None:
        descriptor = CapabilityDescriptor(name=connector.name, modalities=frozenset(connector.modalities))
        with self._lock:
            previous = self._entries.get(connector.name)
            if previous is not None:
                logger.info(f"Replacing registered provider {connector.name!r}")
                descriptor.enabled = previous.descriptor.enabled
            # Re-registration keeps the original position in the dict.
            self._entries[connector.name] = _Entry(connector, descriptor)

    def get(self, name: str) -> Connector:
        with self._lock:
            entry = self._entries.get(name)
        if entry is None:
            raise ProviderNotFoundError(f"Provider {name!r} is not registered")
        return entry.connector

    def descriptor(self, name: str) -> CapabilityDescriptor:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                raise ProviderNotFoundError(f"Provider {name!r} is not registered")
            return replace(entry.descriptor)

    def descriptors(self) -> List[CapabilityDescriptor]:
        with self._lock:
            return [replace(entry.descriptor) for entry in self._entries.values()]

    def connectors(self) -> List[Connector]:
        with self._lock:
            return [entry.connector for entry in self._entries.values()]

    def list_by_modality(self, modality: str) -> List[Connector]:
        with self._lock:
            return [
                entry.connector
                for entry in self._entries.values()
                if entry.descriptor.enabled and entry.descriptor.supports(modality)
            ]

    def is_enabled(self, name: str) -> bool:
        with self._lock:
            entry = self._entries.get(name)
            return bool(entry and entry.descriptor.enabled)

    def enable(self, name: str) -> bool:
        return self._set_enabled(name, True)

    def disable(self, name: str) -> bool:
        return self._set_enabled(name, False)

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return False
            entry.descriptor.enabled = enabled
        logger.info(f"Provider {name!r} {'enabled' if enabled else 'disabled'}")
        return True

    def health_check_all(self, timeout_ms: int | None = None) -> Dict[str, bool]:
        """Health-check every enabled connector concurrently.

        A check that raises or outlives the timeout counts as unhealthy for
        that connector only.
        """
        timeout_ms = timeout_ms or self.health_timeout_ms
        with self._lock:
            targets = [entry.connector for entry in self._entries.values() if entry.descriptor.enabled]
        if not targets:
            return {}

        results: Dict[str, bool] = {}
        executor = ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="health")
        try:
            futures = [(connector.name, executor.submit(_check_health, connector)) for connector in targets]
            deadline = time.monotonic() + timeout_ms / 1000.0
            for name, future in futures:
                try:
                    results[name] = bool(wait_until(future, deadline, timeout_ms))
                except ProviderTimeoutError:
                    logger.warning(f"Health check for {name} timed out after {timeout_ms}ms")
                    results[name] = False
                except Exception as exc:
                    logger.warning(f"Health check for {name} failed: {exc}")
                    results[name] = False
        finally:
            executor.shutdown(wait=False)

        with self._lock:
            for name, healthy in results.items():
                entry = self._entries.get(name)
                if entry is not None:
                    entry.descriptor.healthy = healthy
        return results

    def list_capabilities(self) -> List[Dict[str, Any]]:
        return [descriptor.to_dict() for descriptor in self.descriptors()]


def _check_health(connector: Connector) -> bool:
    check = getattr(connector, "health_check", None)
    if check is None:
        return False
    return bool(check())
