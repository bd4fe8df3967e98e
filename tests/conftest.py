"""Shared test fixtures for SmartCart."""

import pytest

from smartcart.cache_store import JSONCacheStore
from smartcart.config import ConfigManager
from smartcart.connectivity import ConnectivityMonitor
from smartcart.memory_remote import InMemoryRemote
from smartcart.service import create_offline_data_service
from smartcart.sqlite_store import SQLiteCacheStore


@pytest.fixture
def temp_cache_dir(tmp_path):
    """Create a temporary cache directory."""
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    return cache_dir


@pytest.fixture
def store(temp_cache_dir):
    """Create a JSON cache store with temporary directory."""
    return JSONCacheStore(cache_dir=temp_cache_dir)


@pytest.fixture(params=["json", "sqlite"])
def any_store(request, temp_cache_dir):
    """Each cache store backend in turn."""
    if request.param == "sqlite":
        return SQLiteCacheStore(db_path=temp_cache_dir / "offline.db")
    return JSONCacheStore(cache_dir=temp_cache_dir)


@pytest.fixture
def remote():
    """An in-memory remote backend signed in as user-1."""
    return InMemoryRemote()


@pytest.fixture
def connectivity():
    """A connectivity monitor that starts online."""
    return ConnectivityMonitor(online=True)


@pytest.fixture
def config(tmp_path):
    """Default configuration, isolated from any config file on the machine."""
    return ConfigManager(config_path=tmp_path / "missing.toml")


@pytest.fixture
def service(store, remote, connectivity, config):
    """The offline data service wired to the in-memory remote."""
    return create_offline_data_service(
        store,
        remote.services(),
        connectivity,
        auth=remote.auth,
        config=config,
        auto_sync=False,
    )


@pytest.fixture
def retailer(remote):
    """A retailer that already exists remotely."""
    return remote.seed_retailer("Target", "Main St")


@pytest.fixture
def trip(remote, retailer):
    """A planned trip at the seeded retailer."""
    return remote.seed_trip(retailer.id, "Weekly shop")
