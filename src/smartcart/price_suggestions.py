"""Price suggestions and price history analytics."""

from collections import defaultdict
from collections.abc import Callable
from datetime import date, timedelta

from .config import PricingConfig
from .guards import guarded
from .item_normalizer import fuzzy_matches, normalize_item_name
from .logging import get_logger
from .models import (
    Confidence,
    PopularItem,
    PriceHistoryRecord,
    PriceStats,
    PriceSuggestion,
    PriceTrends,
    Result,
)
from .remote import PriceHistoryService

logger = get_logger(__name__)

# Retailer id that matches records from every retailer
ANY_RETAILER = "any"


def _suggestion(record: PriceHistoryRecord, confidence: Confidence) -> PriceSuggestion:
    return PriceSuggestion(
        estimated=record.price,
        confidence=confidence,
        last_paid=record.price,
        last_paid_date=record.date,
        retailer_name=record.retailer_name,
    )


def _stats(records: list[PriceHistoryRecord]) -> PriceStats:
    if not records:
        return PriceStats()
    prices = [r.price for r in records]
    return PriceStats(
        avg=round(sum(prices) / len(prices), 2),
        min=min(prices),
        max=max(prices),
        count=len(prices),
    )


class PriceSuggestionEngine:
    """Suggests what an item will cost from the user's price history.

    Lookup tiers, first hit wins:

    1. same item at the same retailer within high_confidence_days -> high
    2. same item at the same retailer within medium_confidence_days -> medium
    3. same item at any retailer within high_confidence_days -> medium
    4. a recent record at the same retailer sharing a name token -> low

    The suggested price is the matched record's price, never an average.
    """

    def __init__(
        self,
        price_history: PriceHistoryService,
        settings: PricingConfig | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.price_history = price_history
        self.settings = settings or PricingConfig()
        self._today = today

    def _since(self, days: int) -> date:
        return self._today() - timedelta(days=days)

    @guarded("Failed to get price suggestion")
    async def get_price_suggestion(self, item_name: str, retailer_id: str) -> Result[PriceSuggestion]:
        """Suggest a price for item_name at retailer_id ("any" for every retailer)."""
        name = normalize_item_name(item_name)
        if not name:
            return Result.ok(PriceSuggestion())
        retailer = None if retailer_id == ANY_RETAILER else retailer_id
        s = self.settings

        tiers = [
            (retailer, s.high_confidence_days, Confidence.HIGH),
            (retailer, s.medium_confidence_days, Confidence.MEDIUM),
            (None, s.high_confidence_days, Confidence.MEDIUM),
        ]
        for tier_retailer, days, confidence in tiers:
            result = await self.price_history.query(
                item_name=name, retailer_id=tier_retailer, since=self._since(days), limit=1
            )
            if not result.success:
                return result
            if result.data:
                return Result.ok(_suggestion(result.data[0], confidence))

        recent = await self.price_history.query(retailer_id=retailer, limit=s.fuzzy_scan_limit)
        if not recent.success:
            return recent
        for record in recent.data:
            if fuzzy_matches(name, record.item_name, s.min_token_length):
                return Result.ok(_suggestion(record, Confidence.LOW))

        logger.debug("No price history for %r", name)
        return Result.ok(PriceSuggestion())

    @guarded("Failed to get price history")
    async def get_price_history(self, item_name: str, limit: int = 50) -> Result[list[PriceHistoryRecord]]:
        """Every recorded price for an item, newest first."""
        return await self.price_history.query(item_name=normalize_item_name(item_name), limit=limit)

    @guarded("Failed to get price trends")
    async def get_price_trends(self, item_name: str) -> Result[PriceTrends]:
        """Average, min and max price over the last 30 and 90 days and all time."""
        result = await self.price_history.query(item_name=normalize_item_name(item_name))
        if not result.success:
            return result

        records = result.data
        last_30 = self._since(self.settings.high_confidence_days)
        last_90 = self._since(self.settings.medium_confidence_days)
        return Result.ok(
            PriceTrends(
                last_30_days=_stats([r for r in records if r.date >= last_30]),
                last_90_days=_stats([r for r in records if r.date >= last_90]),
                all_time=_stats(records),
            )
        )

    @guarded("Failed to get popular items")
    async def get_popular_items(self, limit: int = 20) -> Result[list[PopularItem]]:
        """Most frequently bought items over the last 90 days."""
        result = await self.price_history.query(
            since=self._since(self.settings.medium_confidence_days)
        )
        if not result.success:
            return result

        prices: dict[str, list[float]] = defaultdict(list)
        for record in result.data:
            prices[normalize_item_name(record.item_name)].append(record.price)

        popular = [
            PopularItem(item_name=name, count=len(p), avg_price=round(sum(p) / len(p), 2))
            for name, p in prices.items()
        ]
        popular.sort(key=lambda item: item.count, reverse=True)
        return Result.ok(popular[:limit])
