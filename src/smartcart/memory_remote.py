"""In-process implementation of the remote entity services.

Behaves like the hosted backend: every call is scoped to the signed-in user,
integrity rules are enforced server side, trip totals are recomputed on item
changes, and recording an actual price writes a price history record.
Failure injection makes it usable as a test double for offline scenarios.
"""

import functools
from collections import defaultdict
from datetime import date, datetime
from uuid import uuid4

from .errors import (
    ACTIVE_TRIP_MESSAGE,
    NOT_AUTHENTICATED_MESSAGE,
    RETAILER_HAS_TRIPS_MESSAGE,
    ErrorCode,
)
from .item_normalizer import normalize_item_name
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
    compute_trip_totals,
)
from .remote import AuthContext, RemoteServices

NETWORK_ERROR_MESSAGE = "Network request failed"


class StaticAuth:
    """AuthContext holding a fixed user, or nobody after sign_out()."""

    def __init__(self, user_id: str | None = "user-1"):
        self.user_id = user_id

    def current_user_id(self) -> str | None:
        return self.user_id

    def sign_out(self) -> None:
        self.user_id = None


class RemoteError(Exception):
    """Raised inside the backend and returned to callers as a failed Result."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.REMOTE_ERROR):
        self.code = code
        super().__init__(message)


def remote_call(operation: str):
    """Wrap a service method with call logging, failure injection and auth."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            backend: InMemoryRemote = self._backend
            backend.calls.append(operation)
            if backend.unavailable or backend._consume_failure(operation):
                return Result.fail(NETWORK_ERROR_MESSAGE, ErrorCode.REMOTE_ERROR)
            user_id = backend.auth.current_user_id()
            if user_id is None:
                return Result.fail(NOT_AUTHENTICATED_MESSAGE, ErrorCode.NOT_AUTHENTICATED)
            try:
                return await func(self, user_id, *args, **kwargs)
            except RemoteError as e:
                return Result.fail(str(e), e.code)

        return wrapper

    return decorator


class _Service:
    def __init__(self, backend: "InMemoryRemote"):
        self._backend = backend


class _RetailerService(_Service):
    @remote_call("retailers.create")
    async def create(self, user_id: str, data: RetailerCreate) -> Result[Retailer]:
        b = self._backend
        name = data.name.strip()
        b._ensure_unique_retailer(user_id, name)
        retailer = Retailer(
            id=b._new_id(),
            user_id=user_id,
            name=name,
            location=(data.location or "").strip() or None,
        )
        b.retailers[retailer.id] = retailer
        return Result.ok(b._retailer_view(retailer))

    @remote_call("retailers.list")
    async def list_all(self, user_id: str) -> Result[list[Retailer]]:
        b = self._backend
        retailers = [r for r in b.retailers.values() if r.user_id == user_id]
        retailers.sort(key=lambda r: r.name.lower())
        return Result.ok([b._retailer_view(r) for r in retailers])

    @remote_call("retailers.get")
    async def get_by_id(self, user_id: str, retailer_id: str) -> Result[Retailer]:
        b = self._backend
        return Result.ok(b._retailer_view(b._owned_retailer(user_id, retailer_id)))

    @remote_call("retailers.update")
    async def update(self, user_id: str, retailer_id: str, data: RetailerUpdate) -> Result[Retailer]:
        b = self._backend
        retailer = b._owned_retailer(user_id, retailer_id)
        fields = data.model_dump(exclude_none=True)
        if fields.get("name") is not None:
            name = fields["name"].strip()
            b._ensure_unique_retailer(user_id, name, exclude_id=retailer_id)
            retailer.name = name
        if "location" in fields:
            retailer.location = (fields["location"] or "").strip() or None
        retailer.updated_at = datetime.now()
        return Result.ok(b._retailer_view(retailer))

    @remote_call("retailers.delete")
    async def delete(self, user_id: str, retailer_id: str) -> Result[None]:
        b = self._backend
        b._owned_retailer(user_id, retailer_id)
        if any(t.retailer_id == retailer_id for t in b.trips.values()):
            raise RemoteError(RETAILER_HAS_TRIPS_MESSAGE, ErrorCode.RETAILER_HAS_TRIPS)
        del b.retailers[retailer_id]
        return Result.ok(None)


class _TripService(_Service):
    @remote_call("trips.create")
    async def create(self, user_id: str, data: TripCreate) -> Result[ShoppingTrip]:
        b = self._backend
        if not b._is_owned_retailer(user_id, data.retailer_id):
            raise RemoteError("Invalid retailer selected", ErrorCode.INVALID_REFERENCE)
        trip = ShoppingTrip(
            id=b._new_id(),
            user_id=user_id,
            retailer_id=data.retailer_id,
            name=data.name.strip(),
            date=data.date,
            status=TripStatus.PLANNED,
        )
        b.trips[trip.id] = trip
        return Result.ok(b._trip_view(trip))

    @remote_call("trips.list")
    async def list_all(
        self, user_id: str, filters: TripFilters | None = None
    ) -> Result[list[ShoppingTrip]]:
        b = self._backend
        filters = filters or TripFilters()
        trips = [t for t in b.trips.values() if t.user_id == user_id]
        if filters.status:
            trips = [t for t in trips if t.status == filters.status]
        if filters.retailer_id:
            trips = [t for t in trips if t.retailer_id == filters.retailer_id]
        if filters.date_from:
            trips = [t for t in trips if t.date >= filters.date_from]
        if filters.date_to:
            trips = [t for t in trips if t.date <= filters.date_to]
        trips.sort(key=lambda t: t.date, reverse=True)
        if filters.limit is not None:
            trips = trips[: filters.limit]
        return Result.ok([b._trip_view(t) for t in trips])

    @remote_call("trips.get")
    async def get_by_id(self, user_id: str, trip_id: str) -> Result[ShoppingTrip]:
        b = self._backend
        return Result.ok(b._trip_view(b._owned_trip(user_id, trip_id)))

    @remote_call("trips.update")
    async def update(self, user_id: str, trip_id: str, data: TripUpdate) -> Result[ShoppingTrip]:
        b = self._backend
        trip = b._owned_trip(user_id, trip_id)
        if data.retailer_id is not None:
            if not b._is_owned_retailer(user_id, data.retailer_id):
                raise RemoteError("Invalid retailer selected", ErrorCode.INVALID_REFERENCE)
            trip.retailer_id = data.retailer_id
        if data.name is not None:
            trip.name = data.name.strip()
        if data.date is not None:
            trip.date = data.date
        trip.updated_at = datetime.now()
        return Result.ok(b._trip_view(trip))

    @remote_call("trips.update_status")
    async def update_status(
        self, user_id: str, trip_id: str, status: TripStatus
    ) -> Result[ShoppingTrip]:
        b = self._backend
        trip = b._owned_trip(user_id, trip_id)
        if status == TripStatus.ACTIVE and any(
            t.user_id == user_id and t.status == TripStatus.ACTIVE and t.id != trip_id
            for t in b.trips.values()
        ):
            raise RemoteError(ACTIVE_TRIP_MESSAGE, ErrorCode.ACTIVE_TRIP_EXISTS)
        trip.status = status
        trip.completed_at = datetime.now() if status == TripStatus.COMPLETED else None
        trip.updated_at = datetime.now()
        return Result.ok(b._trip_view(trip))

    @remote_call("trips.delete")
    async def delete(self, user_id: str, trip_id: str) -> Result[None]:
        b = self._backend
        b._owned_trip(user_id, trip_id)
        del b.trips[trip_id]
        for item_id in [i.id for i in b.items.values() if i.trip_id == trip_id]:
            del b.items[item_id]
        return Result.ok(None)

    @remote_call("trips.get_active")
    async def get_active(self, user_id: str) -> Result[ShoppingTrip | None]:
        b = self._backend
        for trip in b.trips.values():
            if trip.user_id == user_id and trip.status == TripStatus.ACTIVE:
                return Result.ok(b._trip_view(trip))
        return Result.ok(None)


class _TripItemService(_Service):
    @remote_call("items.create")
    async def create(self, user_id: str, trip_id: str, data: ItemCreate) -> Result[TripItem]:
        b = self._backend
        if not b._is_owned_trip(user_id, trip_id):
            raise RemoteError("Invalid trip", ErrorCode.INVALID_REFERENCE)
        item = TripItem(
            id=b._new_id(),
            trip_id=trip_id,
            item_name=data.item_name.strip(),
            quantity=data.quantity,
            estimated_price=data.estimated_price,
        )
        b.items[item.id] = item
        b._recompute_totals(trip_id)
        return Result.ok(item.model_copy(deep=True))

    @remote_call("items.list")
    async def list_all(self, user_id: str, trip_id: str) -> Result[list[TripItem]]:
        b = self._backend
        if not b._is_owned_trip(user_id, trip_id):
            raise RemoteError("Invalid trip", ErrorCode.INVALID_REFERENCE)
        return Result.ok([i.model_copy(deep=True) for i in b._trip_items(trip_id)])

    @remote_call("items.get")
    async def get_by_id(self, user_id: str, item_id: str) -> Result[TripItem]:
        return Result.ok(self._backend._owned_item(user_id, item_id).model_copy(deep=True))

    @remote_call("items.update")
    async def update(self, user_id: str, item_id: str, data: ItemUpdate) -> Result[TripItem]:
        return Result.ok(self._backend._update_item(user_id, item_id, data))

    @remote_call("items.update_price")
    async def update_price(self, user_id: str, item_id: str, actual_price: float) -> Result[TripItem]:
        return Result.ok(
            self._backend._update_item(user_id, item_id, ItemUpdate(actual_price=actual_price))
        )

    @remote_call("items.toggle")
    async def toggle_completed(self, user_id: str, item_id: str) -> Result[TripItem]:
        b = self._backend
        item = b._owned_item(user_id, item_id)
        return Result.ok(b._update_item(user_id, item_id, ItemUpdate(is_completed=not item.is_completed)))

    @remote_call("items.delete")
    async def delete(self, user_id: str, item_id: str) -> Result[None]:
        b = self._backend
        item = b._owned_item(user_id, item_id)
        del b.items[item_id]
        b._recompute_totals(item.trip_id)
        return Result.ok(None)


class _PriceHistoryService(_Service):
    @remote_call("price_history.query")
    async def query(
        self,
        user_id: str,
        item_name: str | None = None,
        retailer_id: str | None = None,
        since: date | None = None,
        limit: int | None = None,
    ) -> Result[list[PriceHistoryRecord]]:
        b = self._backend
        records = [r for r in b.price_history if r.user_id == user_id]
        if item_name is not None:
            wanted = normalize_item_name(item_name)
            records = [r for r in records if normalize_item_name(r.item_name) == wanted]
        if retailer_id is not None:
            records = [r for r in records if r.retailer_id == retailer_id]
        if since is not None:
            records = [r for r in records if r.date >= since]
        records.sort(key=lambda r: (r.date, r.created_at), reverse=True)
        if limit is not None:
            records = records[:limit]
        return Result.ok([b._price_view(r) for r in records])


class InMemoryRemote:
    """A complete remote backend held in memory."""

    def __init__(self, auth: AuthContext | None = None):
        self.auth = auth or StaticAuth()
        self.retailers: dict[str, Retailer] = {}
        self.trips: dict[str, ShoppingTrip] = {}
        self.items: dict[str, TripItem] = {}
        self.price_history: list[PriceHistoryRecord] = []

        self.calls: list[str] = []
        self.unavailable = False
        self._failures: dict[str, int] = defaultdict(int)

        self.retailer_service = _RetailerService(self)
        self.trip_service = _TripService(self)
        self.item_service = _TripItemService(self)
        self.price_history_service = _PriceHistoryService(self)

    def services(self) -> RemoteServices:
        """Bundle the services for the offline layer."""
        return RemoteServices(
            retailers=self.retailer_service,
            trips=self.trip_service,
            items=self.item_service,
            price_history=self.price_history_service,
        )

    # --- Failure injection ---

    def fail_next(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of an operation fail with a network error."""
        self._failures[operation] += times

    def _consume_failure(self, operation: str) -> bool:
        if self._failures[operation] > 0:
            self._failures[operation] -= 1
            return True
        return False

    # --- Seeding (synchronous, for tests and demos) ---

    def _seed_user(self, user_id: str | None) -> str:
        return user_id or self.auth.current_user_id() or "user-1"

    def seed_retailer(
        self, name: str, location: str | None = None, user_id: str | None = None
    ) -> Retailer:
        retailer = Retailer(
            id=self._new_id(), user_id=self._seed_user(user_id), name=name, location=location
        )
        self.retailers[retailer.id] = retailer
        return retailer.model_copy(deep=True)

    def seed_trip(
        self,
        retailer_id: str,
        name: str = "Weekly shop",
        trip_date: date | None = None,
        status: TripStatus = TripStatus.PLANNED,
        user_id: str | None = None,
    ) -> ShoppingTrip:
        trip = ShoppingTrip(
            id=self._new_id(),
            user_id=self._seed_user(user_id),
            retailer_id=retailer_id,
            name=name,
            date=trip_date or date.today(),
            status=status,
            completed_at=datetime.now() if status == TripStatus.COMPLETED else None,
        )
        self.trips[trip.id] = trip
        return trip.model_copy(deep=True)

    def seed_item(
        self,
        trip_id: str,
        item_name: str,
        quantity: float = 1,
        estimated_price: float | None = None,
    ) -> TripItem:
        item = TripItem(
            id=self._new_id(),
            trip_id=trip_id,
            item_name=item_name,
            quantity=quantity,
            estimated_price=estimated_price,
        )
        self.items[item.id] = item
        self._recompute_totals(trip_id)
        return item.model_copy(deep=True)

    def seed_price(
        self,
        item_name: str,
        price: float,
        retailer_id: str,
        on: date,
        trip_id: str = "seed-trip",
        user_id: str | None = None,
    ) -> PriceHistoryRecord:
        record = PriceHistoryRecord(
            user_id=self._seed_user(user_id),
            item_name=item_name,
            price=price,
            retailer_id=retailer_id,
            trip_id=trip_id,
            date=on,
        )
        self.price_history.append(record)
        return record

    # --- Internals ---

    @staticmethod
    def _new_id() -> str:
        return str(uuid4())

    def _ensure_unique_retailer(self, user_id: str, name: str, exclude_id: str | None = None) -> None:
        for r in self.retailers.values():
            if r.user_id == user_id and r.id != exclude_id and r.name.lower() == name.lower():
                raise RemoteError("A retailer with this name already exists", ErrorCode.DUPLICATE)

    def _is_owned_retailer(self, user_id: str, retailer_id: str) -> bool:
        retailer = self.retailers.get(retailer_id)
        return retailer is not None and retailer.user_id == user_id

    def _owned_retailer(self, user_id: str, retailer_id: str) -> Retailer:
        if not self._is_owned_retailer(user_id, retailer_id):
            raise RemoteError("Retailer not found", ErrorCode.NOT_FOUND)
        return self.retailers[retailer_id]

    def _is_owned_trip(self, user_id: str, trip_id: str) -> bool:
        trip = self.trips.get(trip_id)
        return trip is not None and trip.user_id == user_id

    def _owned_trip(self, user_id: str, trip_id: str) -> ShoppingTrip:
        if not self._is_owned_trip(user_id, trip_id):
            raise RemoteError("Trip not found", ErrorCode.NOT_FOUND)
        return self.trips[trip_id]

    def _owned_item(self, user_id: str, item_id: str) -> TripItem:
        item = self.items.get(item_id)
        if item is None or not self._is_owned_trip(user_id, item.trip_id):
            raise RemoteError("Item not found", ErrorCode.NOT_FOUND)
        return item

    def _trip_items(self, trip_id: str) -> list[TripItem]:
        return sorted(
            (i for i in self.items.values() if i.trip_id == trip_id), key=lambda i: i.created_at
        )

    def _recompute_totals(self, trip_id: str) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            return
        trip.estimated_total, trip.actual_total = compute_trip_totals(self._trip_items(trip_id))
        trip.updated_at = datetime.now()

    def _update_item(self, user_id: str, item_id: str, data: ItemUpdate) -> TripItem:
        item = self._owned_item(user_id, item_id)
        fields = data.model_dump(exclude_none=True)
        if fields.get("item_name") is not None:
            item.item_name = fields["item_name"].strip()
        if fields.get("quantity") is not None:
            item.quantity = fields["quantity"]
        if "estimated_price" in fields:
            item.estimated_price = fields["estimated_price"]
        if "actual_price" in fields:
            item.actual_price = fields["actual_price"]
            if item.actual_price is not None:
                self._record_price(user_id, item)
        if fields.get("is_completed") is not None:
            item.is_completed = fields["is_completed"]
        item.updated_at = datetime.now()
        self._recompute_totals(item.trip_id)
        return item.model_copy(deep=True)

    def _record_price(self, user_id: str, item: TripItem) -> None:
        """Write (or rewrite) the price history record for a trip item."""
        trip = self.trips[item.trip_id]
        record_id = f"ph_{item.id}"
        self.price_history = [r for r in self.price_history if r.id != record_id]
        self.price_history.append(
            PriceHistoryRecord(
                id=record_id,
                user_id=user_id,
                item_name=normalize_item_name(item.item_name),
                price=item.actual_price,
                retailer_id=trip.retailer_id,
                trip_id=trip.id,
                date=date.today(),
            )
        )

    def _retailer_view(self, retailer: Retailer) -> Retailer:
        view = retailer.model_copy(deep=True)
        view.trip_count = sum(1 for t in self.trips.values() if t.retailer_id == retailer.id)
        return view

    def _trip_view(self, trip: ShoppingTrip) -> ShoppingTrip:
        view = trip.model_copy(deep=True)
        retailer = self.retailers.get(trip.retailer_id)
        view.retailer = retailer.model_copy(deep=True) if retailer else None
        view.items = [i.model_copy(deep=True) for i in self._trip_items(trip.id)]
        return view

    def _price_view(self, record: PriceHistoryRecord) -> PriceHistoryRecord:
        view = record.model_copy(deep=True)
        retailer = self.retailers.get(record.retailer_id)
        if retailer is not None:
            view.retailer_name = retailer.name
        return view
