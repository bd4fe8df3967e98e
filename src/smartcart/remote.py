"""Interfaces of the remote collaborators the offline layer depends on.

Every remote call is scoped to the user supplied by the AuthContext and
returns a Result rather than raising.
"""

from dataclasses import dataclass
from datetime import date
from typing import Protocol

from .models import (
    ItemCreate,
    ItemUpdate,
    PriceHistoryRecord,
    Result,
    Retailer,
    RetailerCreate,
    RetailerUpdate,
    ShoppingTrip,
    TripCreate,
    TripFilters,
    TripItem,
    TripStatus,
    TripUpdate,
)


class AuthContext(Protocol):
    """Supplies the signed-in user."""

    def current_user_id(self) -> str | None: ...


class RetailerService(Protocol):
    async def create(self, data: RetailerCreate) -> Result[Retailer]: ...
    async def list_all(self) -> Result[list[Retailer]]: ...
    async def get_by_id(self, retailer_id: str) -> Result[Retailer]: ...
    async def update(self, retailer_id: str, data: RetailerUpdate) -> Result[Retailer]: ...
    async def delete(self, retailer_id: str) -> Result[None]: ...


class TripService(Protocol):
    async def create(self, data: TripCreate) -> Result[ShoppingTrip]: ...
    async def list_all(self, filters: TripFilters | None = None) -> Result[list[ShoppingTrip]]: ...
    async def get_by_id(self, trip_id: str) -> Result[ShoppingTrip]: ...
    async def update(self, trip_id: str, data: TripUpdate) -> Result[ShoppingTrip]: ...
    async def update_status(self, trip_id: str, status: TripStatus) -> Result[ShoppingTrip]: ...
    async def delete(self, trip_id: str) -> Result[None]: ...
    async def get_active(self) -> Result[ShoppingTrip | None]: ...


class TripItemService(Protocol):
    async def create(self, trip_id: str, data: ItemCreate) -> Result[TripItem]: ...
    async def list_all(self, trip_id: str) -> Result[list[TripItem]]: ...
    async def get_by_id(self, item_id: str) -> Result[TripItem]: ...
    async def update(self, item_id: str, data: ItemUpdate) -> Result[TripItem]: ...
    async def update_price(self, item_id: str, actual_price: float) -> Result[TripItem]: ...
    async def toggle_completed(self, item_id: str) -> Result[TripItem]: ...
    async def delete(self, item_id: str) -> Result[None]: ...


class PriceHistoryService(Protocol):
    async def query(
        self,
        item_name: str | None = None,
        retailer_id: str | None = None,
        since: date | None = None,
        limit: int | None = None,
    ) -> Result[list[PriceHistoryRecord]]:
        """Return matching records, newest first.

        item_name matches case-insensitively against the trimmed record name.
        """
        ...


@dataclass
class RemoteServices:
    """The set of remote entity services."""

    retailers: RetailerService
    trips: TripService
    items: TripItemService
    price_history: PriceHistoryService
