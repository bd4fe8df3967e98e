"""Tests for price suggestions and price analytics."""

from datetime import date, timedelta

import pytest

from smartcart.errors import ErrorCode
from smartcart.models import Confidence, ItemCreate, PriceSuggestion
from smartcart.price_suggestions import ANY_RETAILER, PriceSuggestionEngine


def days_ago(n: int) -> date:
    return date.today() - timedelta(days=n)


@pytest.fixture
def engine(remote):
    """Price engine over the in-memory price history."""
    return PriceSuggestionEngine(remote.price_history_service)


@pytest.fixture
def other(remote):
    """A second retailer."""
    return remote.seed_retailer("Aldi")


class TestPriceSuggestion:
    """Tests for the tiered lookup."""

    @pytest.mark.asyncio
    async def test_no_history(self, engine, retailer):
        result = await engine.get_price_suggestion("dragonfruit", retailer.id)

        assert result.success
        assert result.data == PriceSuggestion()
        assert result.data.estimated is None
        assert result.data.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_recent_same_retailer(self, engine, remote, retailer):
        """A match at the same store in the last 30 days is high confidence."""
        remote.seed_price("bananas", 1.50, retailer.id, days_ago(5))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 1.50
        assert result.data.confidence == Confidence.HIGH
        assert result.data.retailer_name == "Target"
        assert result.data.last_paid == 1.50
        assert result.data.last_paid_date == days_ago(5)

    @pytest.mark.asyncio
    async def test_same_retailer_beats_newer_elsewhere(self, engine, remote, retailer, other):
        remote.seed_price("bananas", 2.00, retailer.id, days_ago(10))
        remote.seed_price("bananas", 1.00, other.id, days_ago(5))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 2.00
        assert result.data.confidence == Confidence.HIGH

    @pytest.mark.asyncio
    async def test_older_same_retailer_is_medium(self, engine, remote, retailer, other):
        remote.seed_price("bananas", 1.80, retailer.id, days_ago(60))
        remote.seed_price("bananas", 1.00, other.id, days_ago(5))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 1.80
        assert result.data.confidence == Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_recent_any_retailer_is_medium(self, engine, remote, retailer, other):
        remote.seed_price("bananas", 1.00, other.id, days_ago(5))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 1.00
        assert result.data.confidence == Confidence.MEDIUM
        assert result.data.retailer_name == "Aldi"

    @pytest.mark.asyncio
    async def test_newest_price_used_verbatim(self, engine, remote, retailer):
        remote.seed_price("milk", 3.00, retailer.id, days_ago(8))
        remote.seed_price("milk", 3.40, retailer.id, days_ago(3))

        result = await engine.get_price_suggestion("milk", retailer.id)

        assert result.data.estimated == 3.40

    @pytest.mark.asyncio
    async def test_name_is_case_and_space_insensitive(self, engine, remote, retailer):
        remote.seed_price("bananas", 1.50, retailer.id, days_ago(2))

        result = await engine.get_price_suggestion("  BANANAS ", retailer.id)

        assert result.data.estimated == 1.50

    @pytest.mark.asyncio
    async def test_fuzzy_match_is_low(self, engine, remote, retailer):
        """An old record sharing a word at the same store is a low confidence hit."""
        remote.seed_price("organic bananas", 2.20, retailer.id, days_ago(200))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 2.20
        assert result.data.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_fuzzy_ignores_short_tokens(self, engine, remote, retailer):
        remote.seed_price("fab soap", 4.00, retailer.id, days_ago(200))

        result = await engine.get_price_suggestion("ab", retailer.id)

        assert result.data.estimated is None

    @pytest.mark.asyncio
    async def test_fuzzy_only_scans_recent_records(self, engine, remote, retailer):
        remote.seed_price("organic bananas", 2.20, retailer.id, days_ago(200))
        for n in range(20):
            remote.seed_price(f"soap {n}", 1.00, retailer.id, days_ago(100 + n))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated is None

    @pytest.mark.asyncio
    async def test_fuzzy_is_same_retailer_only(self, engine, remote, retailer, other):
        remote.seed_price("organic bananas", 2.20, other.id, days_ago(200))

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated is None

    @pytest.mark.asyncio
    async def test_any_retailer_wildcard(self, engine, remote, other):
        remote.seed_price("bananas", 1.10, other.id, days_ago(60))

        result = await engine.get_price_suggestion("bananas", ANY_RETAILER)

        assert result.data.estimated == 1.10
        assert result.data.confidence == Confidence.MEDIUM

    @pytest.mark.asyncio
    async def test_query_failure_is_returned(self, engine, remote, retailer):
        remote.unavailable = True

        result = await engine.get_price_suggestion("bananas", retailer.id)

        assert result.success is False
        assert result.code == ErrorCode.REMOTE_ERROR

    @pytest.mark.asyncio
    async def test_recorded_price_feeds_suggestion(self, service, trip, retailer):
        """Recording an actual price makes it the next suggestion."""
        item = await service.items.create(trip.id, ItemCreate(item_name="Bananas"))
        await service.items.update_price(item.data.id, 1.75)

        result = await service.prices.get_price_suggestion("bananas", retailer.id)

        assert result.data.estimated == 1.75
        assert result.data.confidence == Confidence.HIGH


class TestPriceAnalytics:
    """Tests for history, trends and popular items."""

    @pytest.mark.asyncio
    async def test_price_history_newest_first(self, engine, remote, retailer):
        remote.seed_price("milk", 3.00, retailer.id, days_ago(40))
        remote.seed_price("milk", 3.20, retailer.id, days_ago(4))
        remote.seed_price("eggs", 4.00, retailer.id, days_ago(4))

        result = await engine.get_price_history("Milk")

        assert [r.price for r in result.data] == [3.20, 3.00]
        assert result.data[0].retailer_name == "Target"

    @pytest.mark.asyncio
    async def test_price_history_limit(self, engine, remote, retailer):
        for n in range(5):
            remote.seed_price("milk", 3.00 + n, retailer.id, days_ago(n))

        result = await engine.get_price_history("milk", limit=2)

        assert len(result.data) == 2

    @pytest.mark.asyncio
    async def test_price_trends(self, engine, remote, retailer):
        remote.seed_price("milk", 2.00, retailer.id, days_ago(10))
        remote.seed_price("milk", 4.00, retailer.id, days_ago(50))
        remote.seed_price("milk", 6.00, retailer.id, days_ago(200))

        trends = (await engine.get_price_trends("milk")).data

        assert (trends.last_30_days.avg, trends.last_30_days.count) == (2.00, 1)
        assert (trends.last_90_days.min, trends.last_90_days.max) == (2.00, 4.00)
        assert trends.last_90_days.avg == 3.00
        assert (trends.all_time.avg, trends.all_time.count) == (4.00, 3)

    @pytest.mark.asyncio
    async def test_price_trends_empty(self, engine):
        trends = (await engine.get_price_trends("milk")).data

        assert trends.all_time.count == 0
        assert trends.all_time.avg == 0.0

    @pytest.mark.asyncio
    async def test_popular_items(self, engine, remote, retailer):
        for price in (3.00, 3.50, 4.00):
            remote.seed_price("Milk", price, retailer.id, days_ago(5))
        remote.seed_price("eggs", 2.00, retailer.id, days_ago(5))
        remote.seed_price("bread", 1.00, retailer.id, days_ago(120))

        popular = (await engine.get_popular_items()).data

        assert [(p.item_name, p.count) for p in popular] == [("milk", 3), ("eggs", 1)]
        assert popular[0].avg_price == 3.50

    @pytest.mark.asyncio
    async def test_popular_items_limit(self, engine, remote, retailer):
        for name in ("a1", "b2", "c3"):
            remote.seed_price(name, 1.00, retailer.id, days_ago(1))

        popular = (await engine.get_popular_items(limit=2)).data

        assert len(popular) == 2


class ExplodingHistory:
    """Price history whose backend connection always drops."""

    async def query(self, item_name=None, retailer_id=None, since=None, limit=None):
        raise ConnectionError("connection reset")


class TestQueryErrors:
    """Tests for price lookups when the history query raises."""

    @pytest.fixture
    def broken_engine(self):
        return PriceSuggestionEngine(ExplodingHistory())

    @pytest.mark.asyncio
    async def test_suggestion_returns_failure(self, broken_engine):
        result = await broken_engine.get_price_suggestion("milk", "r1")

        assert result.success is False
        assert result.code == ErrorCode.INTERNAL_ERROR
        assert result.error == "Failed to get price suggestion"

    @pytest.mark.asyncio
    async def test_analytics_return_failure(self, broken_engine):
        results = [
            await broken_engine.get_price_history("milk"),
            await broken_engine.get_price_trends("milk"),
            await broken_engine.get_popular_items(),
        ]

        assert [r.success for r in results] == [False, False, False]
        assert {r.code for r in results} == {ErrorCode.INTERNAL_ERROR}
