"""Capability registries mapping control-family codes to scanners and collectors.

Each registry holds explicit family registrations plus one default entry
used for any family without its own implementation. Registries are filled
at startup by :func:`build_registries` or by direct ``register`` calls.

Usage::

    scanners, collectors = build_registries(cache, rules=load_rules(path))
    scanners.register("AC", MyAccessControlScanner())
    scanner = scanners.resolve("AU")   # default rule scanner
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Generic, TypeVar

from conmon.cache import ResourceCache
from conmon.families import ALL_FAMILIES, family_of
from conmon.ids import generate_id
from conmon.integrations.base import EvidenceCollector, Scanner
from conmon.models.enums import EvidenceType
from conmon.models.evidence import EvidenceItem
from conmon.scanning.rules import RuleBasedScanner, RuleDefinition

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_KEY = "Default"


class CapabilityRegistry(Generic[T]):
    """Family code -> implementation table with a default fallback."""

    def __init__(self, kind: str, default: T) -> None:
        self.kind = kind
        self._entries: dict[str, T] = {DEFAULT_KEY: default}
        self._lock = threading.Lock()

    def register(self, family: str, implementation: T) -> None:
        key = DEFAULT_KEY if family == DEFAULT_KEY else family.upper()
        with self._lock:
            self._entries[key] = implementation
        logger.debug("Registered %s for %s: %s", self.kind, key, type(implementation).__name__)

    def resolve(self, family: str) -> T:
        """Implementation registered for ``family``, else the default."""
        with self._lock:
            impl = self._entries.get(family.upper())
            if impl is None:
                logger.debug("No %s registered for %s, using default", self.kind, family)
                impl = self._entries[DEFAULT_KEY]
            return impl

    def has(self, family: str) -> bool:
        with self._lock:
            return family.upper() in self._entries

    def specialized(self) -> dict[str, T]:
        """Explicit registrations, excluding the default entry."""
        with self._lock:
            return {k: v for k, v in self._entries.items() if k != DEFAULT_KEY}

    @property
    def default(self) -> T:
        with self._lock:
            return self._entries[DEFAULT_KEY]


class ResourceEvidenceCollector(EvidenceCollector):
    """Default collector: configuration evidence straight from cached resources.

    Families whose controls name a resource type in the rule set get one
    configuration item per matching resource; other evidence kinds need a
    specialized collector and come back empty.
    """

    def __init__(self, cache: ResourceCache, rules: list[RuleDefinition] | None = None) -> None:
        self._cache = cache
        self._rules = rules or []

    def _resource_types_for(self, family: str) -> set[str]:
        if family == ALL_FAMILIES:
            return {r.resource_type.lower() for r in self._rules}
        return {
            r.resource_type.lower() for r in self._rules if family_of(r.control_id) == family.upper()
        }

    async def collect_configuration_evidence(self, subscription_id, family):
        wanted = self._resource_types_for(family)
        resources = await self._cache.get_resources(subscription_id)
        items = []
        for resource in resources:
            if wanted and resource.resource_type.lower() not in wanted:
                continue
            items.append(EvidenceItem(
                evidence_id=generate_id("evi_"),
                evidence_type=EvidenceType.CONFIGURATION,
                resource_id=resource.resource_id,
                collected_at=datetime.now(timezone.utc),
                data={
                    "resource_type": resource.resource_type,
                    "location": resource.location,
                    "properties": resource.properties,
                },
            ))
        return items

    async def collect_log_evidence(self, subscription_id, family):
        return []

    async def collect_metric_evidence(self, subscription_id, family):
        return []

    async def collect_policy_evidence(self, subscription_id, family):
        return []

    async def collect_access_control_evidence(self, subscription_id, family):
        return []


def build_registries(
    cache: ResourceCache,
    rules: list[RuleDefinition] | None = None,
    scanners: dict[str, Scanner] | None = None,
    collectors: dict[str, EvidenceCollector] | None = None,
) -> tuple[CapabilityRegistry[Scanner], CapabilityRegistry[EvidenceCollector]]:
    """Build scanner and collector registries.

    The default scanner evaluates ``rules`` generically against ``cache``;
    the default collector snapshots cached resource configuration.

    Args:
        cache: Resource cache shared with the assessment run.
        rules: Data-driven rule definitions for the default scanner.
        scanners: Family code -> specialized scanner.
        collectors: Family code -> specialized evidence collector.

    Returns:
        ``(scanner_registry, collector_registry)``.
    """
    rules = rules or []
    scanner_registry: CapabilityRegistry[Scanner] = CapabilityRegistry(
        "scanner", RuleBasedScanner(cache, rules)
    )
    collector_registry: CapabilityRegistry[EvidenceCollector] = CapabilityRegistry(
        "evidence collector", ResourceEvidenceCollector(cache, rules)
    )
    for family, scanner in (scanners or {}).items():
        scanner_registry.register(family, scanner)
    for family, collector in (collectors or {}).items():
        collector_registry.register(family, collector)
    return scanner_registry, collector_registry
