"""Assembles the offline data layer from its collaborators."""

from dataclasses import dataclass

from .cache_store import CacheStoreProtocol
from .config import ConfigManager
from .connectivity import ConnectivityMonitor
from .logging import get_logger
from .price_suggestions import PriceSuggestionEngine
from .remote import AuthContext, RemoteServices
from .repositories import RetailerRepository, TripItemRepository, TripRepository
from .sync_engine import SyncEngine, wire_auto_sync

logger = get_logger(__name__)


@dataclass
class OfflineDataService:
    """Entry point the UI layer talks to."""

    retailers: RetailerRepository
    trips: TripRepository
    items: TripItemRepository
    sync: SyncEngine
    prices: PriceSuggestionEngine


def create_offline_data_service(
    store: CacheStoreProtocol,
    remote: RemoteServices,
    connectivity: ConnectivityMonitor,
    auth: AuthContext | None = None,
    config: ConfigManager | None = None,
    auto_sync: bool = True,
) -> OfflineDataService:
    """Build the repositories, sync engine and price engine over one store.

    Args:
        store: Local cache store
        remote: Remote entity services
        connectivity: Online/offline signal
        auth: Supplies the user id stamped on optimistic records
        config: Settings; defaults apply when omitted
        auto_sync: Drain the queue automatically on reconnect
    """
    config = config or ConfigManager()
    shared = dict(
        store=store,
        remote=remote,
        connectivity=connectivity,
        auth=auth,
        settings=config.sync,
    )
    retailers = RetailerRepository(**shared)
    trips = TripRepository(**shared)
    items = TripItemRepository(**shared)
    sync = SyncEngine(
        store, remote, connectivity, retailers, trips, items, settings=config.sync
    )
    if auto_sync:
        wire_auto_sync(connectivity, sync)
        logger.debug("Auto sync enabled")

    return OfflineDataService(
        retailers=retailers,
        trips=trips,
        items=items,
        sync=sync,
        prices=PriceSuggestionEngine(remote.price_history, settings=config.pricing),
    )
