"""Shared test fixtures."""

import pytest

from conmon.cache import ResourceCache
from conmon.models.finding import Resource
from conmon.scanning.catalog import StaticControlCatalog
from conmon.storage.memory import InMemoryStore

from fakes import FakeInventory, make_controls


@pytest.fixture
def storage_resource() -> Resource:
    return Resource(
        resource_id="/subscriptions/sub-0001/resourceGroups/rg-app/providers/Microsoft.Storage/storageAccounts/st1",
        resource_type="Microsoft.Storage/storageAccounts",
        name="st1",
        location="eastus",
        resource_group="rg-app",
        properties={"supportsHttpsTrafficOnly": False, "encryption": {"keySource": "Microsoft.Storage"}},
    )


@pytest.fixture
def inventory(storage_resource) -> FakeInventory:
    return FakeInventory([storage_resource])


@pytest.fixture
def cache(inventory) -> ResourceCache:
    return ResourceCache(inventory, ttl_seconds=300)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def catalog() -> StaticControlCatalog:
    return StaticControlCatalog(make_controls("AC", 10) + make_controls("AU", 4))
