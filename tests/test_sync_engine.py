"""Tests for replaying queued mutations."""

from datetime import date

import pytest

from smartcart.cache_store import CacheKeys
from smartcart.errors import ErrorCode
from smartcart.memory_remote import InMemoryRemote
from smartcart.models import (
    CreateItem,
    CreateTrip,
    ItemCreate,
    ItemUpdate,
    RetailerCreate,
    RetailerUpdate,
    SyncResult,
    TripCreate,
    TripStatus,
    TripUpdate,
    UpdateItem,
)
from smartcart.repositories import is_temp_id
from smartcart.service import create_offline_data_service
from smartcart.sync_engine import remap_action


class FlakyAuth:
    """Signed in until a set number of remote calls have been made."""

    def __init__(self):
        self.remaining: int | None = None

    def current_user_id(self) -> str | None:
        if self.remaining is None:
            return "user-1"
        if self.remaining <= 0:
            return None
        self.remaining -= 1
        return "user-1"


class TestRemapAction:
    """Tests for temp id rewriting."""

    def test_rewrites_trip_id_and_retailer(self):
        action = CreateTrip(
            data=TripCreate(name="Shop", date=date(2026, 1, 1), retailer_id="temp_r"),
            temp_id="temp_t",
        )
        remapped = remap_action(action, {"temp_r": "r1"})

        assert remapped.data.retailer_id == "r1"
        assert remapped.temp_id == "temp_t"
        assert action.data.retailer_id == "temp_r"

    def test_rewrites_item_references(self):
        create = CreateItem(trip_id="temp_t", data=ItemCreate(item_name="Milk"))
        update = UpdateItem(id="temp_i", data=ItemUpdate(quantity=2))

        assert remap_action(create, {"temp_t": "t1"}).trip_id == "t1"
        assert remap_action(update, {"temp_i": "i1"}).id == "i1"

    def test_untouched_without_match(self):
        update = UpdateItem(id="i9", data=ItemUpdate(quantity=2))
        assert remap_action(update, {"temp_i": "i1"}) is update


class TestSyncPendingChanges:
    """Tests for draining the queue."""

    @pytest.mark.asyncio
    async def test_offline_returns_zeros(self, service, store, connectivity):
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))

        result = await service.sync.sync_pending_changes()

        assert result == SyncResult()
        assert await store.queue_size() == 1

    @pytest.mark.asyncio
    async def test_two_queued_creates_sync(self, service, store, connectivity):
        """Reconnecting replays both creates and the cache gets server ids."""
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await service.retailers.create(RetailerCreate(name="Lidl"))
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result.synced == 2
        assert result.failed == 0
        assert await service.sync.get_queue_size() == 0
        listed = await service.retailers.get_all()
        assert sorted(r.name for r in listed.data) == ["Aldi", "Lidl"]
        assert not any(is_temp_id(r.id) for r in listed.data)

    @pytest.mark.asyncio
    async def test_replays_in_queue_order(self, service, connectivity, remote):
        await connectivity.set_online(False)
        for name in ("A", "B", "C"):
            await service.retailers.create(RetailerCreate(name=name))
        await connectivity.set_online(True)

        await service.sync.sync_pending_changes()

        assert [r.name for r in remote.retailers.values()] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_retry_ceiling(self, service, store, connectivity, remote):
        """A mutation failing every replay is dropped after its third retry."""
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await connectivity.set_online(True)
        remote.fail_next("retailers.create", times=10)

        outcomes = [await service.sync.sync_pending_changes() for _ in range(5)]

        assert [o.pending for o in outcomes] == [1, 1, 1, 0, 0]
        assert [o.failed for o in outcomes] == [0, 0, 0, 1, 0]
        assert remote.calls.count("retailers.create") == 4
        assert await store.queue_size() == 0

    @pytest.mark.asyncio
    async def test_retry_count_persisted(self, service, store, connectivity, remote):
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await connectivity.set_online(True)
        remote.fail_next("retailers.create")

        await service.sync.sync_pending_changes()

        queued = await store.list_queued_mutations()
        assert queued[0].retry_count == 1

    @pytest.mark.asyncio
    async def test_raising_remote_counts_as_failure(self, service, store, connectivity, remote):
        """A replay that raises is retried and dropped without blocking the queue."""
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Broken"))
        await service.retailers.create(RetailerCreate(name="Fine"))
        await connectivity.set_online(True)

        real_create = remote.retailer_service.create

        async def create_or_raise(data):
            if data.name == "Broken":
                raise ConnectionError("connection reset")
            return await real_create(data)

        service.sync.remote.retailers.create = create_or_raise

        first = await service.sync.sync_pending_changes()

        assert (first.synced, first.pending, first.failed) == (1, 1, 0)
        assert [r.name for r in remote.retailers.values()] == ["Fine"]
        (queued,) = await store.list_queued_mutations()
        assert queued.retry_count == 1
        cached = await service.retailers.get_all()
        assert "Fine" in [r.name for r in cached.data]

        outcomes = [await service.sync.sync_pending_changes() for _ in range(3)]

        assert [o.failed for o in outcomes] == [0, 0, 1]
        assert await store.queue_size() == 0

    @pytest.mark.asyncio
    async def test_temp_ids_remapped_across_entities(self, service, store, connectivity, remote):
        """A retailer, trip and item created offline sync with real references."""
        await connectivity.set_online(False)
        retailer = (await service.retailers.create(RetailerCreate(name="Aldi"))).data
        trip = (
            await service.trips.create(
                TripCreate(name="Weekly", date=date(2026, 3, 1), retailer_id=retailer.id)
            )
        ).data
        await service.items.create(trip.id, ItemCreate(item_name="Milk"))
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result.synced == 3
        (real_retailer,) = remote.retailers.values()
        (real_trip,) = remote.trips.values()
        (real_item,) = remote.items.values()
        assert real_trip.retailer_id == real_retailer.id
        assert real_item.trip_id == real_trip.id

        assert await store.get(CacheKeys.trip_items(trip.id)) is None
        cached_items = await store.get(CacheKeys.trip_items(real_trip.id))
        assert [i["id"] for i in cached_items] == [real_item.id]

    @pytest.mark.asyncio
    async def test_active_pointer_follows_real_id(self, service, store, connectivity, retailer):
        await connectivity.set_online(False)
        trip = (
            await service.trips.create(
                TripCreate(name="Weekly", date=date(2026, 3, 1), retailer_id=retailer.id)
            )
        ).data
        await service.trips.update_status(trip.id, TripStatus.ACTIVE)
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result.synced == 2
        active = await store.get(CacheKeys.ACTIVE_TRIP)
        assert not is_temp_id(active["id"])
        assert active["status"] == "active"

    @pytest.mark.asyncio
    async def test_every_update_action_replays(self, service, store, connectivity, remote, retailer, trip):
        """Offline edits of each kind reach the remote after sync."""
        keep = remote.seed_item(trip.id, "Milk", estimated_price=1.0)
        gone = remote.seed_item(trip.id, "Soda")
        await service.retailers.get_all()
        await service.trips.get_all()
        await service.items.get_by_trip(trip.id)
        await connectivity.set_online(False)

        await service.retailers.update(retailer.id, RetailerUpdate(location="Elm St"))
        await service.trips.update(trip.id, TripUpdate(name="Renamed"))
        await service.trips.update_status(trip.id, TripStatus.ACTIVE)
        await service.items.toggle_completed(keep.id)
        await service.items.update_price(keep.id, 2.5)
        await service.items.update(keep.id, ItemUpdate(quantity=3))
        await service.items.create(trip.id, ItemCreate(item_name="Bread"))
        await service.items.delete(gone.id)
        assert await store.queue_size() == 8
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result == SyncResult(synced=8)
        assert remote.retailers[retailer.id].location == "Elm St"
        assert remote.trips[trip.id].name == "Renamed"
        assert remote.trips[trip.id].status == TripStatus.ACTIVE
        item = remote.items[keep.id]
        assert (item.is_completed, item.actual_price, item.quantity) == (True, 2.5, 3)
        assert gone.id not in remote.items
        assert sorted(i.item_name for i in remote.items.values()) == ["Bread", "Milk"]
        assert remote.trips[trip.id].actual_total == 7.5
        assert [r.price for r in remote.price_history] == [2.5]

        cached = (await service.items.get_by_trip(trip.id)).data
        assert not any(is_temp_id(i.id) for i in cached)

    @pytest.mark.asyncio
    async def test_create_then_delete_offline(self, service, connectivity, remote, retailer):
        spare = remote.seed_retailer("Spare")
        await service.retailers.get_all()
        await connectivity.set_online(False)
        trip = (
            await service.trips.create(
                TripCreate(name="Oops", date=date(2026, 3, 1), retailer_id=retailer.id)
            )
        ).data
        await service.trips.delete(trip.id)
        await service.retailers.delete(spare.id)
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result.synced == 3
        assert remote.trips == {}
        assert spare.id not in remote.retailers

    @pytest.mark.asyncio
    async def test_delete_of_missing_record_counts_as_synced(self, service, connectivity, remote, trip):
        item = remote.seed_item(trip.id, "Milk")
        await service.items.get_by_trip(trip.id)
        await connectivity.set_online(False)
        await service.items.delete(item.id)
        del remote.items[item.id]
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result.synced == 1
        assert await service.sync.get_queue_size() == 0

    @pytest.mark.asyncio
    async def test_rejected_replay_eventually_dropped(self, service, connectivity, remote, retailer):
        """A server-side rejection is retried then dropped like any failure."""
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Target"))
        await connectivity.set_online(True)

        for _ in range(3):
            await service.sync.sync_pending_changes()
        result = await service.sync.sync_pending_changes()

        assert result.failed == 1
        assert len(remote.retailers) == 1


class TestAuthDuringSync:
    """Tests for authentication loss mid-drain."""

    @pytest.mark.asyncio
    async def test_signed_out_stops_without_consuming_retries(self, service, store, connectivity, remote):
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await service.retailers.create(RetailerCreate(name="Lidl"))
        remote.auth.sign_out()
        await connectivity.set_online(True)

        result = await service.sync.sync_pending_changes()

        assert result == SyncResult(pending=2)
        assert remote.calls.count("retailers.create") == 1
        queued = await store.list_queued_mutations()
        assert [m.retry_count for m in queued] == [0, 0]

    @pytest.mark.asyncio
    async def test_remaining_queue_keeps_remapped_ids(self, store, connectivity, config):
        auth = FlakyAuth()
        remote = InMemoryRemote(auth=auth)
        service = create_offline_data_service(
            store, remote.services(), connectivity, auth=auth, config=config, auto_sync=False
        )
        await connectivity.set_online(False)
        retailer = (await service.retailers.create(RetailerCreate(name="Aldi"))).data
        await service.trips.create(
            TripCreate(name="Weekly", date=date(2026, 3, 1), retailer_id=retailer.id)
        )
        await connectivity.set_online(True)
        auth.remaining = 1

        result = await service.sync.sync_pending_changes()

        assert result.synced == 1
        assert result.pending == 1
        (real_retailer,) = remote.retailers.values()
        (queued,) = await store.list_queued_mutations()
        assert queued.action.data.retailer_id == real_retailer.id


class TestDrainGuard:
    """Tests for re-entrant sync triggers."""

    @pytest.mark.asyncio
    async def test_reentrant_call_is_skipped(self, service, connectivity, remote):
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await connectivity.set_online(True)

        inner_results = []
        real_create = remote.retailer_service.create

        async def create_and_retrigger(data):
            inner_results.append(await service.sync.sync_pending_changes())
            return await real_create(data)

        service.sync.remote.retailers.create = create_and_retrigger

        result = await service.sync.sync_pending_changes()

        assert result.synced == 1
        assert inner_results == [SyncResult(skipped=True)]
        assert service.sync.is_draining is False

    @pytest.mark.asyncio
    async def test_engine_fault_is_contained(self, service, store, connectivity):
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))
        await connectivity.set_online(True)
        store.location.write_text("{broken")

        result = await service.sync.sync_pending_changes()

        assert result.synced == 0
        assert service.sync.is_draining is False


class TestAutoSync:
    """Tests for the reconnect trigger."""

    @pytest.mark.asyncio
    async def test_reconnect_drains_queue(self, store, remote, connectivity, config):
        service = create_offline_data_service(
            store, remote.services(), connectivity, auth=remote.auth, config=config
        )
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))

        await connectivity.set_online(True)

        assert await store.queue_size() == 0
        assert [r.name for r in remote.retailers.values()] == ["Aldi"]


class TestClearCache:
    """Tests for clearing cached collections."""

    @pytest.mark.asyncio
    async def test_clears_collections_keeps_queue(self, service, store, connectivity, remote, trip):
        remote.seed_item(trip.id, "Milk")
        await service.retailers.get_all()
        await service.trips.update_status(trip.id, TripStatus.ACTIVE)
        await service.items.get_by_trip(trip.id)
        await connectivity.set_online(False)
        await service.retailers.create(RetailerCreate(name="Aldi"))

        await service.sync.clear_cache()

        assert await store.keys() == []
        assert await store.queue_size() == 1
        result = await service.retailers.get_all()
        assert result.code == ErrorCode.NO_CACHED_DATA
