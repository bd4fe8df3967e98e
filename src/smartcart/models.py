"""Core data models for SmartCart."""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Generic, Literal, TypeVar, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from .errors import ErrorCode

T = TypeVar("T")

# Alias for fields named `date`, which would otherwise shadow the type
OptionalDate = date | None


class TripStatus(str, Enum):
    """Shopping trip lifecycle states."""

    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# planned -> active -> completed, archived reachable from any non-active state
TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.PLANNED: {TripStatus.ACTIVE, TripStatus.ARCHIVED},
    TripStatus.ACTIVE: {TripStatus.COMPLETED},
    TripStatus.COMPLETED: {TripStatus.ACTIVE, TripStatus.ARCHIVED},
    TripStatus.ARCHIVED: {TripStatus.PLANNED},
}


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    """Check whether a trip may move from one status to another."""
    return target in TRIP_TRANSITIONS[current]


class Confidence(str, Enum):
    """Confidence tier of a price suggestion."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CollectionTag(str, Enum):
    """Kind of collection held by a cache entry."""

    RETAILERS = "retailers"
    TRIPS = "trips"
    TRIP_ITEMS = "trip_items"
    ACTIVE_TRIP = "active_trip"


# --- Entities ---


class Retailer(BaseModel):
    """A store the user shops at."""

    id: str
    user_id: str
    name: str
    location: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    trip_count: int = 0


class TripItem(BaseModel):
    """An item on a shopping trip."""

    id: str
    trip_id: str
    item_name: str
    quantity: float = Field(default=1, gt=0)
    estimated_price: float | None = None
    actual_price: float | None = None
    is_completed: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ShoppingTrip(BaseModel):
    """A planned, active or finished shopping trip."""

    id: str
    user_id: str
    retailer_id: str
    name: str
    date: date
    status: TripStatus = TripStatus.PLANNED
    estimated_total: float = 0.0
    actual_total: float = 0.0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    retailer: Retailer | None = None
    items: list[TripItem] | None = None


class PriceHistoryRecord(BaseModel):
    """A price paid for an item on a past trip."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    item_name: str
    price: float
    retailer_id: str
    retailer_name: str | None = None
    trip_id: str
    date: date
    created_at: datetime = Field(default_factory=datetime.now)


class PriceSuggestion(BaseModel):
    """Best-effort price estimate for an item."""

    estimated: float | None = None
    confidence: Confidence = Confidence.LOW
    last_paid: float | None = None
    last_paid_date: date | None = None
    retailer_name: str | None = None


class PriceStats(BaseModel):
    """Aggregate price statistics over a window."""

    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    count: int = 0


class PriceTrends(BaseModel):
    """Price statistics for an item across standard windows."""

    last_30_days: PriceStats
    last_90_days: PriceStats
    all_time: PriceStats


class PopularItem(BaseModel):
    """A frequently bought item."""

    item_name: str
    count: int
    avg_price: float


def compute_trip_totals(items: list[TripItem]) -> tuple[float, float]:
    """Return (estimated_total, actual_total) for a trip's items."""
    estimated = sum(i.estimated_price * i.quantity for i in items if i.estimated_price is not None)
    actual = sum(i.actual_price * i.quantity for i in items if i.actual_price is not None)
    return round(estimated, 2), round(actual, 2)


# --- Write payloads ---


class RetailerCreate(BaseModel):
    """Data for creating a retailer."""

    name: str = Field(min_length=1)
    location: str | None = None


class RetailerUpdate(BaseModel):
    """Partial retailer update. Fields left as None are not changed."""

    name: str | None = None
    location: str | None = None


class TripCreate(BaseModel):
    """Data for creating a shopping trip."""

    name: str = Field(min_length=1)
    date: date
    retailer_id: str


class TripUpdate(BaseModel):
    """Partial trip update (status changes go through update_status)."""

    name: str | None = None
    date: OptionalDate = None
    retailer_id: str | None = None


class ItemCreate(BaseModel):
    """Data for adding an item to a trip."""

    item_name: str = Field(min_length=1)
    quantity: float = Field(default=1, gt=0)
    estimated_price: float | None = None


class ItemUpdate(BaseModel):
    """Partial trip item update. Fields left as None are not changed."""

    item_name: str | None = None
    quantity: float | None = Field(default=None, gt=0)
    estimated_price: float | None = None
    actual_price: float | None = None
    is_completed: bool | None = None


class TripFilters(BaseModel):
    """Filters for listing trips."""

    status: TripStatus | None = None
    retailer_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    limit: int | None = None


# --- Mutation queue ---


class CreateRetailer(BaseModel):
    type: Literal["CREATE_RETAILER"] = "CREATE_RETAILER"
    data: RetailerCreate
    temp_id: str | None = None


class UpdateRetailer(BaseModel):
    type: Literal["UPDATE_RETAILER"] = "UPDATE_RETAILER"
    id: str
    data: RetailerUpdate


class DeleteRetailer(BaseModel):
    type: Literal["DELETE_RETAILER"] = "DELETE_RETAILER"
    id: str


class CreateTrip(BaseModel):
    type: Literal["CREATE_TRIP"] = "CREATE_TRIP"
    data: TripCreate
    temp_id: str | None = None


class UpdateTrip(BaseModel):
    type: Literal["UPDATE_TRIP"] = "UPDATE_TRIP"
    id: str
    data: TripUpdate


class UpdateTripStatus(BaseModel):
    type: Literal["UPDATE_TRIP_STATUS"] = "UPDATE_TRIP_STATUS"
    id: str
    status: TripStatus


class DeleteTrip(BaseModel):
    type: Literal["DELETE_TRIP"] = "DELETE_TRIP"
    id: str


class CreateItem(BaseModel):
    type: Literal["CREATE_ITEM"] = "CREATE_ITEM"
    trip_id: str
    data: ItemCreate
    temp_id: str | None = None


class UpdateItem(BaseModel):
    type: Literal["UPDATE_ITEM"] = "UPDATE_ITEM"
    id: str
    data: ItemUpdate


class DeleteItem(BaseModel):
    type: Literal["DELETE_ITEM"] = "DELETE_ITEM"
    id: str


class ToggleItem(BaseModel):
    type: Literal["TOGGLE_ITEM"] = "TOGGLE_ITEM"
    id: str
    is_completed: bool


class UpdatePrice(BaseModel):
    type: Literal["UPDATE_PRICE"] = "UPDATE_PRICE"
    id: str
    price: float


MutationAction = Annotated[
    Union[
        CreateRetailer,
        UpdateRetailer,
        DeleteRetailer,
        CreateTrip,
        UpdateTrip,
        UpdateTripStatus,
        DeleteTrip,
        CreateItem,
        UpdateItem,
        DeleteItem,
        ToggleItem,
        UpdatePrice,
    ],
    Field(discriminator="type"),
]


class QueuedMutation(BaseModel):
    """A pending write awaiting replay against the remote services."""

    id: str = Field(default_factory=lambda: f"action_{uuid4().hex}")
    action: MutationAction
    timestamp: datetime = Field(default_factory=datetime.now)
    retry_count: int = 0


class SyncResult(BaseModel):
    """Outcome of draining the mutation queue."""

    synced: int = 0
    failed: int = 0
    pending: int = 0
    skipped: bool = False


# --- Results ---


@dataclass(frozen=True)
class Result(Generic[T]):
    """Uniform success/failure envelope returned across service boundaries."""

    success: bool
    data: T | None = None
    error: str | None = None
    code: ErrorCode | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result[Any]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: ErrorCode | None = None) -> "Result[Any]":
        return cls(success=False, error=error, code=code)

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain dict for JSON output."""
        if self.success:
            data = self.data
            if isinstance(data, BaseModel):
                data = data.model_dump(mode="json")
            elif isinstance(data, list):
                data = [d.model_dump(mode="json") if isinstance(d, BaseModel) else d for d in data]
            return {"success": True, "data": data}
        out: dict[str, Any] = {"success": False, "error": self.error}
        if self.code:
            out["error_code"] = self.code.value
        return out
