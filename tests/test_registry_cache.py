"""
Registry cache tests: lifecycle, copy-then-swap publishing, failure retention
"""
import asyncio
import shutil
import threading
from unittest.mock import patch

import pytest

from core.exceptions import DiscoveryError, RegistryRootMissing
from services.module_market.cache import RegistryCache
from services.module_market.models import Snapshot
from services.module_market.scanner import ModuleScanner
from tests.conftest import descriptor


def test_cache_starts_empty(modules_dir):
    cache = RegistryCache(modules_dir)

    snapshot = cache.current()
    assert isinstance(snapshot, Snapshot)
    assert len(snapshot) == 0
    assert snapshot.generation == 0


@pytest.mark.asyncio
async def test_init_populates_snapshot(sample_registry):
    cache = RegistryCache(sample_registry)

    snapshot = await cache.init()

    assert snapshot is cache.current()
    assert set(snapshot.names) == {"module-market", "module-user", "module-docs"}
    assert snapshot.generation == 1
    assert snapshot.scanned_at is not None
    await cache.teardown()


@pytest.mark.asyncio
async def test_init_fails_fast_when_root_missing(tmp_path):
    cache = RegistryCache(tmp_path / "missing")

    with pytest.raises(RegistryRootMissing):
        await cache.init()


@pytest.mark.asyncio
async def test_init_survives_failing_first_scan(sample_registry):
    cache = RegistryCache(sample_registry)

    with patch.object(ModuleScanner, "scan", side_effect=PermissionError("denied")):
        snapshot = await cache.init()

    assert len(snapshot) == 0
    await cache.teardown()


@pytest.mark.asyncio
async def test_refresh_replaces_snapshot_without_mutating_old(make_module, sample_registry):
    cache = RegistryCache(sample_registry)
    await cache.init()
    old = cache.current()

    make_module("module-extra", descriptor("module-extra"))
    new = await cache.refresh()

    assert new is cache.current()
    assert new is not old
    assert "module-extra" in new.names
    assert "module-extra" not in old.names
    assert len(old) == 3
    assert new.generation == old.generation + 1


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_snapshot(sample_registry):
    cache = RegistryCache(sample_registry)
    await cache.init()
    before = cache.current()

    shutil.rmtree(sample_registry)
    with pytest.raises(DiscoveryError):
        await cache.refresh()

    assert cache.current() is before


@pytest.mark.asyncio
async def test_refresh_diagnostics_do_not_fail_refresh(make_module, sample_registry):
    cache = RegistryCache(sample_registry)
    make_module("module-broken", "{oops")

    snapshot = await cache.refresh()

    assert len(snapshot) == 3
    assert [d.code for d in snapshot.diagnostics] == ["DESCRIPTOR_PARSE_ERROR"]


@pytest.mark.asyncio
async def test_concurrent_refreshes_are_serialised(sample_registry):
    cache = RegistryCache(sample_registry)

    results = await asyncio.gather(*(cache.refresh() for _ in range(5)))

    assert sorted(s.generation for s in results) == [1, 2, 3, 4, 5]
    assert cache.current().generation == 5


def test_readers_see_old_or_new_snapshot_never_partial(make_module, modules_dir):
    for i in range(30):
        make_module(f"module-old-{i:02d}", descriptor(f"old-{i:02d}"))

    cache = RegistryCache(modules_dir)
    asyncio.run(cache.refresh())
    old_names = frozenset(cache.current().names)

    for i in range(30):
        shutil.rmtree(modules_dir / f"module-old-{i:02d}")
        make_module(f"module-new-{i:02d}", descriptor(f"new-{i:02d}"))
    new_names = frozenset(f"new-{i:02d}" for i in range(30))

    observed = set()
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            observed.add(frozenset(cache.current().names))

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        asyncio.run(cache.refresh())
    finally:
        stop.set()
        thread.join()
    observed.add(frozenset(cache.current().names))

    assert observed <= {old_names, new_names}
    assert new_names in observed


@pytest.mark.asyncio
async def test_periodic_rescan_picks_up_new_modules(make_module, sample_registry):
    cache = RegistryCache(sample_registry, rescan_interval=0.05)
    await cache.init()

    make_module("module-late", descriptor("module-late"))
    for _ in range(50):
        if "module-late" in cache.current().names:
            break
        await asyncio.sleep(0.02)

    await cache.teardown()
    assert "module-late" in cache.current().names
