"""Replays queued offline mutations against the remote services."""

from collections.abc import Callable
from typing import Any, assert_never

from .cache_store import CacheKeys, CacheStoreProtocol
from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .errors import ErrorCode
from .logging import get_logger
from .models import (
    CreateItem,
    CreateRetailer,
    CreateTrip,
    DeleteItem,
    DeleteRetailer,
    DeleteTrip,
    ItemUpdate,
    MutationAction,
    QueuedMutation,
    Result,
    SyncResult,
    ToggleItem,
    TripItem,
    UpdateItem,
    UpdatePrice,
    UpdateRetailer,
    UpdateTrip,
    UpdateTripStatus,
)
from .remote import RemoteServices
from .repositories import (
    RetailerRepository,
    TripItemRepository,
    TripRepository,
    is_temp_id,
)

logger = get_logger(__name__)

_DELETES = (DeleteRetailer, DeleteTrip, DeleteItem)


def remap_action(action: MutationAction, id_map: dict[str, str]) -> MutationAction:
    """Rewrite temporary ids in an action to the server ids they became."""
    if not id_map:
        return action

    updates: dict[str, Any] = {}
    for field in ("id", "trip_id"):
        value = getattr(action, field, None)
        if value in id_map:
            updates[field] = id_map[value]

    data = getattr(action, "data", None)
    retailer_id = getattr(data, "retailer_id", None)
    if retailer_id in id_map:
        updates["data"] = data.model_copy(update={"retailer_id": id_map[retailer_id]})

    return action.model_copy(update=updates) if updates else action


class SyncEngine:
    """Drains the mutation queue oldest first when the device is online.

    Each mutation is dequeued on success. On failure its retry count is
    bumped and persisted; once it exceeds max_retries the mutation is
    dropped and counted as failed. An authentication failure stops the
    drain and leaves the rest of the queue untouched.
    """

    def __init__(
        self,
        store: CacheStoreProtocol,
        remote: RemoteServices,
        connectivity: ConnectivityMonitor,
        retailers: RetailerRepository,
        trips: TripRepository,
        items: TripItemRepository,
        settings: SyncConfig | None = None,
    ):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.retailers = retailers
        self.trips = trips
        self.items = items
        self.settings = settings or SyncConfig()
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def sync_pending_changes(self) -> SyncResult:
        """Replay every queued mutation once.

        Returns:
            Counts of synced, failed (dropped) and still pending mutations
        """
        if not self.connectivity.is_online:
            return SyncResult()
        if self._draining:
            logger.debug("Sync already in progress, skipping")
            return SyncResult(skipped=True)

        self._draining = True
        result = SyncResult()
        try:
            await self._drain(result)
        except Exception:
            logger.exception("Sync failed")
        finally:
            self._draining = False

        logger.info(
            "Sync finished: %d synced, %d failed, %d pending",
            result.synced,
            result.failed,
            result.pending,
        )
        return result

    async def _drain(self, result: SyncResult) -> None:
        id_map: dict[str, str] = {}
        touched_trips: set[str] = set()
        try:
            mutations = await self.store.list_queued_mutations()

            for index, mutation in enumerate(mutations):
                action = remap_action(mutation.action, id_map)
                try:
                    outcome = await self._replay(action)
                except Exception as e:
                    logger.exception("Replay of %s %s raised", action.type, mutation.id)
                    outcome = Result.fail(str(e), ErrorCode.REMOTE_ERROR)

                if outcome.success or (
                    isinstance(action, _DELETES) and outcome.code == ErrorCode.NOT_FOUND
                ):
                    await self.store.dequeue_mutation(mutation.id)
                    result.synced += 1
                    self._record(action, outcome.data, id_map, touched_trips)
                    continue

                if outcome.code == ErrorCode.NOT_AUTHENTICATED:
                    logger.warning(
                        "Not authenticated, stopping sync with %d queued", len(mutations) - index
                    )
                    remaining = mutations[index:]
                    result.pending += len(remaining)
                    await self._persist_remapped(remaining, id_map)
                    break

                await self._record_failure(mutation, action, outcome, result)
        finally:
            await self._refresh_caches(touched_trips, id_map)

    async def _record_failure(
        self,
        mutation: QueuedMutation,
        action: MutationAction,
        outcome: Result,
        result: SyncResult,
    ) -> None:
        retries = mutation.retry_count + 1
        if retries > self.settings.max_retries:
            logger.warning(
                "Dropping %s %s after %d attempts: %s",
                action.type,
                mutation.id,
                retries,
                outcome.error,
            )
            await self.store.dequeue_mutation(mutation.id)
            result.failed += 1
            return

        logger.info("Replay of %s %s failed (attempt %d): %s", action.type, mutation.id, retries, outcome.error)
        await self.store.update_mutation(
            mutation.model_copy(update={"action": action, "retry_count": retries})
        )
        result.pending += 1

    async def _persist_remapped(self, mutations: list[QueuedMutation], id_map: dict[str, str]) -> None:
        if not id_map:
            return
        for mutation in mutations:
            action = remap_action(mutation.action, id_map)
            if action is not mutation.action:
                await self.store.update_mutation(mutation.model_copy(update={"action": action}))

    async def _replay(self, action: MutationAction) -> Result:
        remote = self.remote
        match action:
            case CreateRetailer(data=data):
                return await remote.retailers.create(data)
            case UpdateRetailer(id=retailer_id, data=data):
                return await remote.retailers.update(retailer_id, data)
            case DeleteRetailer(id=retailer_id):
                return await remote.retailers.delete(retailer_id)
            case CreateTrip(data=data):
                return await remote.trips.create(data)
            case UpdateTrip(id=trip_id, data=data):
                return await remote.trips.update(trip_id, data)
            case UpdateTripStatus(id=trip_id, status=status):
                return await remote.trips.update_status(trip_id, status)
            case DeleteTrip(id=trip_id):
                return await remote.trips.delete(trip_id)
            case CreateItem(trip_id=trip_id, data=data):
                return await remote.items.create(trip_id, data)
            case UpdateItem(id=item_id, data=data):
                return await remote.items.update(item_id, data)
            case DeleteItem(id=item_id):
                return await remote.items.delete(item_id)
            case ToggleItem(id=item_id, is_completed=is_completed):
                # Send the target state so a replayed toggle cannot flip twice
                return await remote.items.update(item_id, ItemUpdate(is_completed=is_completed))
            case UpdatePrice(id=item_id, price=price):
                return await remote.items.update_price(item_id, price)
            case _:
                assert_never(action)

    @staticmethod
    def _record(
        action: MutationAction,
        data: Any,
        id_map: dict[str, str],
        touched_trips: set[str],
    ) -> None:
        if isinstance(action, (CreateRetailer, CreateTrip, CreateItem)) and action.temp_id and data:
            id_map[action.temp_id] = data.id
        if isinstance(action, CreateItem):
            touched_trips.add(action.trip_id)
        elif isinstance(data, TripItem):
            touched_trips.add(data.trip_id)

    async def _refresh_caches(self, touched_trips: set[str], id_map: dict[str, str]) -> None:
        await self.retailers.refresh_cache()
        await self.trips.refresh_cache()

        prefix = self.settings.temp_id_prefix
        for trip_id in sorted(touched_trips):
            if not is_temp_id(trip_id, prefix):
                await self.items.refresh_cache(trip_id)
        # Items cached under a trip's temporary id now live under its real id
        for temp_id in id_map:
            await self.store.remove(CacheKeys.trip_items(temp_id))

        active = await self.store.get(CacheKeys.ACTIVE_TRIP)
        if active is not None and is_temp_id(active.get("id", ""), prefix):
            await self.trips.get_active()

    async def get_queue_size(self) -> int:
        """Number of mutations waiting to be replayed."""
        return await self.store.queue_size()

    async def clear_cache(self) -> None:
        """Drop every cached collection. The mutation queue is kept."""
        await clear_cached_collections(self.store)


async def clear_cached_collections(store: CacheStoreProtocol) -> list[str]:
    """Remove the retailer, trip, active trip and trip item entries.

    Returns:
        The keys that were removed
    """
    keys = [CacheKeys.RETAILERS, CacheKeys.TRIPS, CacheKeys.ACTIVE_TRIP]
    keys += await store.keys(CacheKeys.TRIP_ITEMS_PREFIX)
    removed = []
    for key in keys:
        if await store.get(key) is not None:
            removed.append(key)
        await store.remove(key)
    return removed


def wire_auto_sync(connectivity: ConnectivityMonitor, engine: SyncEngine) -> Callable[[], None]:
    """Drain the queue whenever connectivity comes back.

    Returns:
        A function that removes the subscription
    """
    return connectivity.subscribe(engine.sync_pending_changes)
