"""SmartCart - offline-first data layer for grocery shopping trips."""

from .cache_store import BackendType, CacheKeys, JSONCacheStore, create_cache_store
from .config import ConfigManager
from .connectivity import ConnectivityMonitor
from .errors import CacheStoreError, ErrorCode, SmartCartError
from .memory_remote import InMemoryRemote, StaticAuth
from .models import (
    Confidence,
    ItemCreate,
    ItemUpdate,
    PopularItem,
    PriceHistoryRecord,
    PriceSuggestion,
    PriceTrends,
    QueuedMutation,
    Result,
    Retailer,
    RetailerCreate,
    RetailerUpdate,
    ShoppingTrip,
    SyncResult,
    TripCreate,
    TripFilters,
    TripItem,
    TripStatus,
    TripUpdate,
)
from .price_suggestions import ANY_RETAILER, PriceSuggestionEngine
from .remote import RemoteServices
from .repositories import RetailerRepository, TripItemRepository, TripRepository
from .service import OfflineDataService, create_offline_data_service
from .sqlite_store import SQLiteCacheStore
from .sync_engine import SyncEngine, wire_auto_sync

__version__ = "0.1.0"

__all__ = [
    "ANY_RETAILER",
    "BackendType",
    "CacheKeys",
    "CacheStoreError",
    "Confidence",
    "ConfigManager",
    "ConnectivityMonitor",
    "create_cache_store",
    "create_offline_data_service",
    "ErrorCode",
    "InMemoryRemote",
    "ItemCreate",
    "ItemUpdate",
    "JSONCacheStore",
    "OfflineDataService",
    "PopularItem",
    "PriceHistoryRecord",
    "PriceSuggestion",
    "PriceSuggestionEngine",
    "PriceTrends",
    "QueuedMutation",
    "RemoteServices",
    "Result",
    "Retailer",
    "RetailerCreate",
    "RetailerRepository",
    "RetailerUpdate",
    "ShoppingTrip",
    "SmartCartError",
    "SQLiteCacheStore",
    "StaticAuth",
    "SyncEngine",
    "SyncResult",
    "TripCreate",
    "TripFilters",
    "TripItem",
    "TripItemRepository",
    "TripRepository",
    "TripStatus",
    "TripUpdate",
    "wire_auto_sync",
]
