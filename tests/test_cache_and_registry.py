"""Tests for the TTL caches and the scanner/collector capability registries."""

from conmon.cache import ResourceCache, TTLCache
from conmon.scanning.registry import DEFAULT_KEY, CapabilityRegistry, ResourceEvidenceCollector, build_registries
from conmon.scanning.rules import RuleBasedScanner

from fakes import FakeInventory, ScriptedCollector, ScriptedScanner


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = TTLCache(300, clock=clock)
        cache.set("k", [1])
        clock.now += 299
        assert cache.get("k") == [1]
        clock.now += 1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_empty_list_is_a_hit(self):
        cache = TTLCache(60)
        cache.set("k", [])
        assert cache.get("k") == []
        assert cache.hits == 1

    async def test_get_or_load_loads_once(self):
        cache = TTLCache(60)
        calls = []

        async def loader():
            calls.append(1)
            return "value"

        assert await cache.get_or_load("k", loader) == "value"
        assert await cache.get_or_load("k", loader) == "value"
        assert len(calls) == 1

    def test_invalidate(self):
        cache = TTLCache(60)
        cache.set("k", 1)
        cache.invalidate("k")
        assert cache.get("k") is None


class TestResourceCache:
    async def test_warm_enumerates_once(self, inventory):
        cache = ResourceCache(inventory, ttl_seconds=300)
        assert await cache.warm("sub-0001") == 1
        await cache.get_resources("sub-0001")
        assert inventory.calls == 1

    async def test_resource_group_scopes_are_cached_separately(self, inventory):
        cache = ResourceCache(inventory, ttl_seconds=300)
        assert len(await cache.get_resources("sub-0001", "rg-app")) == 1
        assert await cache.get_resources("sub-0001", "rg-other") == []
        assert inventory.calls == 2

    async def test_filter_by_type(self, cache):
        found = await cache.get_resources_of_type("sub-0001", "microsoft.storage/storageaccounts")
        assert [r.name for r in found] == ["st1"]


class TestCapabilityRegistry:
    def test_unmapped_family_falls_back_to_default(self):
        default, ac = ScriptedScanner(), ScriptedScanner()
        registry = CapabilityRegistry("scanner", default)
        registry.register("ac", ac)
        assert registry.resolve("AC") is ac
        assert registry.resolve("AU") is default
        assert registry.has("AC") and not registry.has("AU")

    def test_specialized_excludes_default(self):
        registry = CapabilityRegistry("collector", ScriptedCollector())
        sc = ScriptedCollector()
        registry.register("SC", sc)
        assert registry.specialized() == {"SC": sc}
        assert DEFAULT_KEY not in registry.specialized()

    def test_builder_installs_rule_defaults(self, cache):
        au = ScriptedScanner()
        scanners, collectors = build_registries(cache, rules=[], scanners={"AU": au})
        assert isinstance(scanners.default, RuleBasedScanner)
        assert isinstance(collectors.default, ResourceEvidenceCollector)
        assert scanners.resolve("AU") is au


class TestResourceEvidenceCollector:
    async def test_configuration_evidence_per_resource(self, cache):
        collector = ResourceEvidenceCollector(cache)
        items = await collector.collect_configuration_evidence("sub-0001", "SC")
        assert len(items) == 1
        assert items[0].data["properties"]["supportsHttpsTrafficOnly"] is False
        assert await collector.collect_log_evidence("sub-0001", "SC") == []

    async def test_empty_inventory(self):
        collector = ResourceEvidenceCollector(ResourceCache(FakeInventory(), ttl_seconds=60))
        assert await collector.collect_configuration_evidence("sub-0001", "AC") == []
