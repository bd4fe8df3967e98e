"""Offline-aware repositories for retailers, trips and trip items.

Each repository presents the same create/read/update/delete contract whether
or not the device is online, routing each call on the connectivity flag seen
at call time:

* online: call the remote service. On success refresh the cache entry; on
  failure queue the mutation for replay and return the failure unchanged.
* offline: never touch the remote. Apply the change to the cached
  collection, queue the mutation, and return the optimistic record. New
  records get a temporary id (``temp_...``) until the sync engine replays
  them.

Public methods never raise; they return a Result.
"""

import time
from datetime import datetime
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel, TypeAdapter

from .cache_store import CacheKeys, CacheStoreProtocol
from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .errors import (
    ACTIVE_TRIP_MESSAGE,
    RETAILER_HAS_TRIPS_MESSAGE,
    ErrorCode,
)
from .guards import guarded
from .logging import get_logger
from .models import (
    CollectionTag,
    CreateItem,
    CreateRetailer,
    CreateTrip,
    DeleteItem,
    DeleteRetailer,
    DeleteTrip,
    ItemCreate,
    ItemUpdate,
    MutationAction,
    Result,
    Retailer,
    RetailerCreate,
    RetailerUpdate,
    ShoppingTrip,
    ToggleItem,
    TripCreate,
    TripFilters,
    TripItem,
    TripStatus,
    TripUpdate,
    UpdateItem,
    UpdatePrice,
    UpdateRetailer,
    UpdateTrip,
    UpdateTripStatus,
    can_transition,
    compute_trip_totals,
)
from .remote import AuthContext, RemoteServices

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

OFFLINE_USER_ID = "current_user"

_retailer_list = TypeAdapter(list[Retailer])
_trip_list = TypeAdapter(list[ShoppingTrip])
_item_list = TypeAdapter(list[TripItem])


def new_temp_id(prefix: str = "temp_") -> str:
    """Generate a temporary id for a record created offline."""
    return f"{prefix}{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def is_temp_id(record_id: str, prefix: str = "temp_") -> bool:
    """True if the id was generated locally and has not been synced."""
    return record_id.startswith(prefix)


def _dump(records: list[BaseModel]) -> list[dict[str, Any]]:
    return [r.model_dump(mode="json") for r in records]


def _find(records: list[M], record_id: str) -> int:
    for i, record in enumerate(records):
        if record.id == record_id:
            return i
    return -1


def _upsert(records: list[M], record: M) -> list[M]:
    index = _find(records, record.id)
    if index >= 0:
        records[index] = record
    else:
        records.append(record)
    return records


class OfflineRepository:
    """Shared plumbing for the per-entity repositories."""

    def __init__(
        self,
        store: CacheStoreProtocol,
        remote: RemoteServices,
        connectivity: ConnectivityMonitor,
        auth: AuthContext | None = None,
        settings: SyncConfig | None = None,
    ):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.auth = auth
        self.settings = settings or SyncConfig()

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    def _temp_id(self) -> str:
        return new_temp_id(self.settings.temp_id_prefix)

    def _user_id(self) -> str:
        if self.auth is not None:
            return self.auth.current_user_id() or OFFLINE_USER_ID
        return OFFLINE_USER_ID

    async def _load(self, key: str, adapter: TypeAdapter) -> list | None:
        raw = await self.store.get(key)
        if raw is None:
            return None
        return adapter.validate_python(raw)

    async def _save(self, key: str, tag: CollectionTag, records: list[BaseModel]) -> None:
        await self.store.put(key, tag, _dump(records))

    async def _queue_after_failure(self, result: Result, action: MutationAction) -> Result:
        """Queue a mutation whose remote attempt failed, then hand back the failure."""
        if result.code == ErrorCode.NOT_AUTHENTICATED:
            return result
        mutation_id = await self.store.enqueue_mutation(action)
        logger.info(
            "Remote %s failed (%s); queued as %s", action.type, result.error, mutation_id
        )
        return result

    async def _apply_offline(
        self, key: str, tag: CollectionTag, records: list[BaseModel], action: MutationAction
    ) -> None:
        mutation_id = await self.store.apply_mutation(key, tag, _dump(records), action)
        logger.info("Offline %s applied locally; queued as %s", action.type, mutation_id)

    @staticmethod
    def _cache_miss(label: str, online: bool) -> Result:
        if online:
            return Result.fail(f"Failed to fetch {label}", ErrorCode.FETCH_FAILED)
        return Result.fail(f"No cached {label} available offline", ErrorCode.NO_CACHED_DATA)


class RetailerRepository(OfflineRepository):
    """Retailers with offline support."""

    async def refresh_cache(self) -> bool:
        """Replace the cached retailer list with the remote one."""
        if not self.is_online:
            return False
        result = await self.remote.retailers.list_all()
        if result.success:
            await self._save(CacheKeys.RETAILERS, CollectionTag.RETAILERS, result.data)
        return result.success

    async def _refresh_with(self, retailer: Retailer) -> None:
        if not await self.refresh_cache():
            cached = await self._load(CacheKeys.RETAILERS, _retailer_list) or []
            await self._save(CacheKeys.RETAILERS, CollectionTag.RETAILERS, _upsert(cached, retailer))

    @guarded("Failed to get retailers")
    async def get_all(self) -> Result[list[Retailer]]:
        online = self.is_online
        if online:
            result = await self.remote.retailers.list_all()
            if result.success:
                await self._save(CacheKeys.RETAILERS, CollectionTag.RETAILERS, result.data)
                return result
            if result.code == ErrorCode.NOT_AUTHENTICATED:
                return result
            logger.info("Falling back to cached retailers: %s", result.error)

        cached = await self._load(CacheKeys.RETAILERS, _retailer_list)
        if cached is not None:
            return Result.ok(cached)
        return self._cache_miss("retailers", online)

    @guarded("Failed to get retailer")
    async def get_by_id(self, retailer_id: str) -> Result[Retailer]:
        online = self.is_online
        if online:
            result = await self.remote.retailers.get_by_id(retailer_id)
            if result.success or result.code == ErrorCode.NOT_AUTHENTICATED:
                return result

        cached = await self._load(CacheKeys.RETAILERS, _retailer_list)
        if cached is None:
            return self._cache_miss("retailers", online)
        index = _find(cached, retailer_id)
        if index >= 0:
            return Result.ok(cached[index])
        return Result.fail("Retailer not found", ErrorCode.NOT_FOUND)

    @guarded("Failed to create retailer")
    async def create(self, data: RetailerCreate) -> Result[Retailer]:
        if self.is_online:
            result = await self.remote.retailers.create(data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, CreateRetailer(data=data))

        now = datetime.now()
        retailer = Retailer(
            id=self._temp_id(),
            user_id=self._user_id(),
            name=data.name.strip(),
            location=(data.location or "").strip() or None,
            created_at=now,
            updated_at=now,
            trip_count=0,
        )
        cached = await self._load(CacheKeys.RETAILERS, _retailer_list) or []
        cached.append(retailer)
        await self._apply_offline(
            CacheKeys.RETAILERS,
            CollectionTag.RETAILERS,
            cached,
            CreateRetailer(data=data, temp_id=retailer.id),
        )
        return Result.ok(retailer)

    @guarded("Failed to update retailer")
    async def update(self, retailer_id: str, data: RetailerUpdate) -> Result[Retailer]:
        if self.is_online:
            result = await self.remote.retailers.update(retailer_id, data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, UpdateRetailer(id=retailer_id, data=data))

        cached = await self._load(CacheKeys.RETAILERS, _retailer_list) or []
        index = _find(cached, retailer_id)
        if index < 0:
            return Result.fail("Retailer not found in cache", ErrorCode.NOT_FOUND)

        fields = data.model_dump(exclude_none=True)
        cached[index] = cached[index].model_copy(update={**fields, "updated_at": datetime.now()})
        await self._apply_offline(
            CacheKeys.RETAILERS,
            CollectionTag.RETAILERS,
            cached,
            UpdateRetailer(id=retailer_id, data=data),
        )
        return Result.ok(cached[index])

    @guarded("Failed to delete retailer")
    async def delete(self, retailer_id: str) -> Result[None]:
        action = DeleteRetailer(id=retailer_id)

        if self.is_online:
            trips = await self.remote.trips.list_all(TripFilters(retailer_id=retailer_id, limit=1))
            if not trips.success:
                return await self._queue_after_failure(trips, action)
            if trips.data:
                return Result.fail(RETAILER_HAS_TRIPS_MESSAGE, ErrorCode.RETAILER_HAS_TRIPS)

            result = await self.remote.retailers.delete(retailer_id)
            if result.success:
                if not await self.refresh_cache():
                    cached = await self._load(CacheKeys.RETAILERS, _retailer_list) or []
                    await self._save(
                        CacheKeys.RETAILERS,
                        CollectionTag.RETAILERS,
                        [r for r in cached if r.id != retailer_id],
                    )
                return result
            return await self._queue_after_failure(result, action)

        # Best-effort local guard; the remote re-checks when the delete replays
        cached_trips = await self._load(CacheKeys.TRIPS, _trip_list) or []
        if any(t.retailer_id == retailer_id for t in cached_trips):
            return Result.fail(RETAILER_HAS_TRIPS_MESSAGE, ErrorCode.RETAILER_HAS_TRIPS)

        cached = await self._load(CacheKeys.RETAILERS, _retailer_list) or []
        remaining = [r for r in cached if r.id != retailer_id]
        await self._apply_offline(CacheKeys.RETAILERS, CollectionTag.RETAILERS, remaining, action)
        return Result.ok(None)


def _matches_filters(trip: ShoppingTrip, filters: TripFilters) -> bool:
    if filters.status and trip.status != filters.status:
        return False
    if filters.retailer_id and trip.retailer_id != filters.retailer_id:
        return False
    if filters.date_from and trip.date < filters.date_from:
        return False
    if filters.date_to and trip.date > filters.date_to:
        return False
    return True


def _with_status(trip: ShoppingTrip, status: TripStatus) -> ShoppingTrip:
    """Apply a status change locally, stamping or clearing completed_at."""
    now = datetime.now()
    return trip.model_copy(
        update={
            "status": status,
            "completed_at": now if status == TripStatus.COMPLETED else None,
            "updated_at": now,
        }
    )


class TripRepository(OfflineRepository):
    """Shopping trips with offline support."""

    async def refresh_cache(self) -> bool:
        """Replace the cached trip list with the remote one."""
        if not self.is_online:
            return False
        result = await self.remote.trips.list_all()
        if result.success:
            await self._save(CacheKeys.TRIPS, CollectionTag.TRIPS, result.data)
        return result.success

    async def _refresh_with(self, trip: ShoppingTrip) -> None:
        if not await self.refresh_cache():
            cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
            await self._save(CacheKeys.TRIPS, CollectionTag.TRIPS, _upsert(cached, trip))

    async def _sync_active_pointer(self, trip: ShoppingTrip) -> None:
        """Keep the active_trip entry in step with a trip's new status."""
        if trip.status == TripStatus.ACTIVE:
            await self.store.put(
                CacheKeys.ACTIVE_TRIP, CollectionTag.ACTIVE_TRIP, trip.model_dump(mode="json")
            )
            return
        active = await self.store.get(CacheKeys.ACTIVE_TRIP)
        if active is not None and active.get("id") == trip.id:
            await self.store.remove(CacheKeys.ACTIVE_TRIP)

    @guarded("Failed to get trips")
    async def get_all(self, filters: TripFilters | None = None) -> Result[list[ShoppingTrip]]:
        online = self.is_online
        if online:
            result = await self.remote.trips.list_all(filters)
            if result.success:
                if filters is None:
                    await self._save(CacheKeys.TRIPS, CollectionTag.TRIPS, result.data)
                return result
            if result.code == ErrorCode.NOT_AUTHENTICATED:
                return result
            logger.info("Falling back to cached trips: %s", result.error)

        cached = await self._load(CacheKeys.TRIPS, _trip_list)
        if cached is None:
            return self._cache_miss("trips", online)
        if filters is not None:
            cached = [t for t in cached if _matches_filters(t, filters)]
            if filters.limit is not None:
                cached = cached[: filters.limit]
        return Result.ok(cached)

    @guarded("Failed to get trip")
    async def get_by_id(self, trip_id: str) -> Result[ShoppingTrip]:
        online = self.is_online
        if online:
            result = await self.remote.trips.get_by_id(trip_id)
            if result.success:
                cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
                await self._save(CacheKeys.TRIPS, CollectionTag.TRIPS, _upsert(cached, result.data))
                return result
            if result.code == ErrorCode.NOT_AUTHENTICATED:
                return result

        cached = await self._load(CacheKeys.TRIPS, _trip_list)
        if cached is None:
            return self._cache_miss("trips", online)
        index = _find(cached, trip_id)
        if index >= 0:
            return Result.ok(cached[index])
        if online:
            return Result.fail("Trip not found", ErrorCode.NOT_FOUND)
        return Result.fail("Trip not found in cache", ErrorCode.NOT_FOUND)

    @guarded("Failed to get active trip")
    async def get_active(self) -> Result[ShoppingTrip | None]:
        if self.is_online:
            result = await self.remote.trips.get_active()
            if result.success:
                if result.data is not None:
                    await self._sync_active_pointer(result.data)
                else:
                    await self.store.remove(CacheKeys.ACTIVE_TRIP)
                return result
            if result.code == ErrorCode.NOT_AUTHENTICATED:
                return result

        raw = await self.store.get(CacheKeys.ACTIVE_TRIP)
        if raw is not None:
            return Result.ok(ShoppingTrip.model_validate(raw))
        cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
        for trip in cached:
            if trip.status == TripStatus.ACTIVE:
                return Result.ok(trip)
        return Result.ok(None)

    @guarded("Failed to create trip")
    async def create(self, data: TripCreate) -> Result[ShoppingTrip]:
        if self.is_online:
            result = await self.remote.trips.create(data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, CreateTrip(data=data))

        now = datetime.now()
        trip = ShoppingTrip(
            id=self._temp_id(),
            user_id=self._user_id(),
            retailer_id=data.retailer_id,
            name=data.name.strip(),
            date=data.date,
            status=TripStatus.PLANNED,
            estimated_total=0.0,
            actual_total=0.0,
            created_at=now,
            updated_at=now,
        )
        cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
        cached.append(trip)
        await self._apply_offline(
            CacheKeys.TRIPS, CollectionTag.TRIPS, cached, CreateTrip(data=data, temp_id=trip.id)
        )
        return Result.ok(trip)

    @guarded("Failed to update trip")
    async def update(self, trip_id: str, data: TripUpdate) -> Result[ShoppingTrip]:
        if self.is_online:
            result = await self.remote.trips.update(trip_id, data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, UpdateTrip(id=trip_id, data=data))

        cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
        index = _find(cached, trip_id)
        if index < 0:
            return Result.fail("Trip not found in cache", ErrorCode.NOT_FOUND)

        fields = data.model_dump(exclude_none=True)
        cached[index] = cached[index].model_copy(update={**fields, "updated_at": datetime.now()})
        await self._apply_offline(
            CacheKeys.TRIPS, CollectionTag.TRIPS, cached, UpdateTrip(id=trip_id, data=data)
        )
        return Result.ok(cached[index])

    @guarded("Failed to update trip status")
    async def update_status(self, trip_id: str, status: TripStatus) -> Result[ShoppingTrip]:
        """Move a trip through planned -> active -> completed (or archived).

        Only one trip may be active at a time; the check runs against the
        remote when online and the cached trips when offline.
        """
        status = TripStatus(status)
        action = UpdateTripStatus(id=trip_id, status=status)

        if self.is_online:
            current = await self.remote.trips.get_by_id(trip_id)
            if not current.success:
                return await self._queue_after_failure(current, action)

            rejection = self._check_transition(current.data, status)
            if rejection is not None:
                return rejection
            if current.data.status == status:
                return current

            if status == TripStatus.ACTIVE:
                active = await self.remote.trips.list_all(TripFilters(status=TripStatus.ACTIVE))
                if not active.success:
                    return await self._queue_after_failure(active, action)
                if any(t.id != trip_id for t in active.data):
                    return Result.fail(ACTIVE_TRIP_MESSAGE, ErrorCode.ACTIVE_TRIP_EXISTS)

            result = await self.remote.trips.update_status(trip_id, status)
            if result.success:
                await self._refresh_with(result.data)
                await self._sync_active_pointer(result.data)
                return result
            return await self._queue_after_failure(result, action)

        cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
        index = _find(cached, trip_id)
        if index < 0:
            return Result.fail("Trip not found in cache", ErrorCode.NOT_FOUND)

        trip = cached[index]
        rejection = self._check_transition(trip, status)
        if rejection is not None:
            return rejection
        if trip.status == status:
            return Result.ok(trip)
        if status == TripStatus.ACTIVE and any(
            t.status == TripStatus.ACTIVE and t.id != trip_id for t in cached
        ):
            return Result.fail(ACTIVE_TRIP_MESSAGE, ErrorCode.ACTIVE_TRIP_EXISTS)

        cached[index] = _with_status(trip, status)
        await self._apply_offline(CacheKeys.TRIPS, CollectionTag.TRIPS, cached, action)
        await self._sync_active_pointer(cached[index])
        return Result.ok(cached[index])

    @staticmethod
    def _check_transition(trip: ShoppingTrip, status: TripStatus) -> Result | None:
        if trip.status == status or can_transition(trip.status, status):
            return None
        return Result.fail(
            f"Cannot move trip from {trip.status.value} to {status.value}",
            ErrorCode.INVALID_TRANSITION,
        )

    @guarded("Failed to delete trip")
    async def delete(self, trip_id: str) -> Result[None]:
        action = DeleteTrip(id=trip_id)

        if self.is_online:
            result = await self.remote.trips.delete(trip_id)
            if not result.success:
                return await self._queue_after_failure(result, action)
            if not await self.refresh_cache():
                cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
                await self._save(
                    CacheKeys.TRIPS, CollectionTag.TRIPS, [t for t in cached if t.id != trip_id]
                )
            await self._forget_trip(trip_id)
            return result

        cached = await self._load(CacheKeys.TRIPS, _trip_list) or []
        remaining = [t for t in cached if t.id != trip_id]
        await self._apply_offline(CacheKeys.TRIPS, CollectionTag.TRIPS, remaining, action)
        await self._forget_trip(trip_id)
        return Result.ok(None)

    async def _forget_trip(self, trip_id: str) -> None:
        await self.store.remove(CacheKeys.trip_items(trip_id))
        active = await self.store.get(CacheKeys.ACTIVE_TRIP)
        if active is not None and active.get("id") == trip_id:
            await self.store.remove(CacheKeys.ACTIVE_TRIP)


class TripItemRepository(OfflineRepository):
    """Trip items with offline support."""

    async def refresh_cache(self, trip_id: str) -> bool:
        """Replace the cached items of one trip with the remote list."""
        if not self.is_online:
            return False
        result = await self.remote.items.list_all(trip_id)
        if result.success:
            await self._save(CacheKeys.trip_items(trip_id), CollectionTag.TRIP_ITEMS, result.data)
            await self._update_trip_totals(trip_id, result.data)
        return result.success

    async def _refresh_with(self, item: TripItem) -> None:
        if not await self.refresh_cache(item.trip_id):
            key = CacheKeys.trip_items(item.trip_id)
            cached = await self._load(key, _item_list) or []
            await self._save(key, CollectionTag.TRIP_ITEMS, _upsert(cached, item))

    async def _find_cached(self, item_id: str) -> tuple[str, list[TripItem], int] | None:
        """Locate an item in any cached trip item collection."""
        for key in await self.store.keys(CacheKeys.TRIP_ITEMS_PREFIX):
            items = await self._load(key, _item_list) or []
            index = _find(items, item_id)
            if index >= 0:
                return key, items, index
        return None

    async def _update_trip_totals(self, trip_id: str, items: list[TripItem]) -> None:
        """Recompute the cached trip's running totals from its items."""
        trips = await self._load(CacheKeys.TRIPS, _trip_list)
        if not trips:
            return
        index = _find(trips, trip_id)
        if index < 0:
            return
        estimated, actual = compute_trip_totals(items)
        trip = trips[index]
        if (trip.estimated_total, trip.actual_total) == (estimated, actual):
            return
        trips[index] = trip.model_copy(update={"estimated_total": estimated, "actual_total": actual})
        await self._save(CacheKeys.TRIPS, CollectionTag.TRIPS, trips)

    @guarded("Failed to get items")
    async def get_by_trip(self, trip_id: str) -> Result[list[TripItem]]:
        online = self.is_online
        key = CacheKeys.trip_items(trip_id)
        if online:
            result = await self.remote.items.list_all(trip_id)
            if result.success:
                await self._save(key, CollectionTag.TRIP_ITEMS, result.data)
                return result
            if result.code == ErrorCode.NOT_AUTHENTICATED:
                return result
            logger.info("Falling back to cached items for trip %s: %s", trip_id, result.error)

        cached = await self._load(key, _item_list)
        if cached is not None:
            return Result.ok(cached)
        return self._cache_miss("items", online)

    @guarded("Failed to create item")
    async def create(self, trip_id: str, data: ItemCreate) -> Result[TripItem]:
        if self.is_online:
            result = await self.remote.items.create(trip_id, data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, CreateItem(trip_id=trip_id, data=data))

        now = datetime.now()
        item = TripItem(
            id=self._temp_id(),
            trip_id=trip_id,
            item_name=data.item_name.strip(),
            quantity=data.quantity,
            estimated_price=data.estimated_price,
            actual_price=None,
            is_completed=False,
            created_at=now,
            updated_at=now,
        )
        key = CacheKeys.trip_items(trip_id)
        cached = await self._load(key, _item_list) or []
        cached.append(item)
        await self._apply_offline(
            key,
            CollectionTag.TRIP_ITEMS,
            cached,
            CreateItem(trip_id=trip_id, data=data, temp_id=item.id),
        )
        await self._update_trip_totals(trip_id, cached)
        return Result.ok(item)

    async def _apply_to_cached(
        self, item_id: str, changes: dict[str, Any], action: MutationAction
    ) -> Result[TripItem]:
        found = await self._find_cached(item_id)
        if found is None:
            return Result.fail("Item not found in cache", ErrorCode.NOT_FOUND)

        key, items, index = found
        items[index] = items[index].model_copy(update={**changes, "updated_at": datetime.now()})
        await self._apply_offline(key, CollectionTag.TRIP_ITEMS, items, action)
        await self._update_trip_totals(items[index].trip_id, items)
        return Result.ok(items[index])

    @guarded("Failed to update item")
    async def update(self, item_id: str, data: ItemUpdate) -> Result[TripItem]:
        if self.is_online:
            result = await self.remote.items.update(item_id, data)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, UpdateItem(id=item_id, data=data))

        changes = data.model_dump(exclude_none=True)
        return await self._apply_to_cached(item_id, changes, UpdateItem(id=item_id, data=data))

    @guarded("Failed to update price")
    async def update_price(self, item_id: str, price: float) -> Result[TripItem]:
        action = UpdatePrice(id=item_id, price=price)
        if self.is_online:
            result = await self.remote.items.update_price(item_id, price)
            if result.success:
                await self._refresh_with(result.data)
                return result
            return await self._queue_after_failure(result, action)

        return await self._apply_to_cached(item_id, {"actual_price": price}, action)

    @guarded("Failed to toggle item")
    async def toggle_completed(self, item_id: str) -> Result[TripItem]:
        found = await self._find_cached(item_id)

        if self.is_online:
            result = await self.remote.items.toggle_completed(item_id)
            if result.success:
                await self._refresh_with(result.data)
                return result
            if found is None:
                return result
            _, items, index = found
            target = not items[index].is_completed
            return await self._queue_after_failure(result, ToggleItem(id=item_id, is_completed=target))

        if found is None:
            return Result.fail("Item not found in cache", ErrorCode.NOT_FOUND)
        _, items, index = found
        target = not items[index].is_completed
        return await self._apply_to_cached(
            item_id, {"is_completed": target}, ToggleItem(id=item_id, is_completed=target)
        )

    @guarded("Failed to delete item")
    async def delete(self, item_id: str) -> Result[None]:
        action = DeleteItem(id=item_id)
        found = await self._find_cached(item_id)

        if self.is_online:
            result = await self.remote.items.delete(item_id)
            if not result.success:
                return await self._queue_after_failure(result, action)
            if found is not None:
                key, items, index = found
                trip_id = items[index].trip_id
                if not await self.refresh_cache(trip_id):
                    items.pop(index)
                    await self._save(key, CollectionTag.TRIP_ITEMS, items)
            return result

        if found is None:
            return Result.fail("Item not found in cache", ErrorCode.NOT_FOUND)
        key, items, index = found
        removed = items.pop(index)
        await self._apply_offline(key, CollectionTag.TRIP_ITEMS, items, action)
        await self._update_trip_totals(removed.trip_id, items)
        return Result.ok(None)
