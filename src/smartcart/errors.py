"""Error codes and exceptions for SmartCart."""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable failure reasons carried on a Result."""

    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    NOT_FOUND = "NOT_FOUND"
    NO_CACHED_DATA = "NO_CACHED_DATA"
    FETCH_FAILED = "FETCH_FAILED"
    REMOTE_ERROR = "REMOTE_ERROR"
    DUPLICATE = "DUPLICATE"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    ACTIVE_TRIP_EXISTS = "ACTIVE_TRIP_EXISTS"
    RETAILER_HAS_TRIPS = "RETAILER_HAS_TRIPS"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    STORAGE_ERROR = "STORAGE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ACTIVE_TRIP_MESSAGE = "Only one trip can be active at a time"
RETAILER_HAS_TRIPS_MESSAGE = "Cannot delete retailer with existing trips"
NOT_AUTHENTICATED_MESSAGE = "User not authenticated"


class SmartCartError(Exception):
    """Base class for SmartCart exceptions."""

    code = ErrorCode.INTERNAL_ERROR


class CacheStoreError(SmartCartError):
    """Raised when the local cache store cannot read or write."""

    code = ErrorCode.STORAGE_ERROR
