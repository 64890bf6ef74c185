"""
Integration Tests - Planning Output, Plans and Forecasts
"""
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from opsboard.analytics.forecast import METHOD, ForecastService, ForecastView
from opsboard.analytics.metrics import Severity
from opsboard.analytics.planning import PlanningSynthesizer, PlanService, PlanView
from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import NotFoundCode, NotFoundResult
from opsboard.database.models import utcnow

pytestmark = pytest.mark.integration

WEEK = DateRange(date(2025, 1, 8), date(2025, 1, 14))


@pytest.fixture
async def busy_week(builder):
    """A week with an empty shelf, a refund jump and an order missing its items"""
    mug = builder.product("MUG")
    shelf = builder.location("SHELF")
    before = builder.order(datetime(2025, 1, 3, 10), items=[(mug, 1, "100")])
    now = builder.order(datetime(2025, 1, 10, 10), items=[(mug, 1, "100")])
    builder.order(datetime(2025, 1, 11, 10), items=[])
    builder.fee("2", before)
    builder.fee("2", now)
    builder.refund("10", now)
    builder.inventory(mug, shelf, 0)
    await builder.save()


@pytest.fixture
def synthesizer(session_factory, thresholds, analytics_settings) -> PlanningSynthesizer:
    return PlanningSynthesizer(session_factory, thresholds, analytics_settings)


class TestPlanningOutput:
    """Tests for the synthesized planning document"""

    async def test_document_shape(self, synthesizer, workspace_id, busy_week):
        """Test every section is present and the wire form uses next7DaysPlan"""
        output = await synthesizer.synthesize(workspace_id, WEEK)
        body = output.model_dump(mode="json", by_alias=True)

        assert set(body) >= {
            "workspaceId", "range", "note", "compareTo", "statusBullets",
            "topRisks", "opportunities", "next7DaysPlan", "assumptions",
        }
        assert body["compareTo"] == {"from": "2025-01-01", "to": "2025-01-07"}
        assert len(body["statusBullets"]) == 5
        assert [d["date"] for d in body["next7DaysPlan"]][0] == "2025-01-15"
        assert body["assumptions"]["noExternalWebData"] is True

    async def test_risks_and_opportunities(self, synthesizer, workspace_id, busy_week):
        """Test high risks lead and the restock and data-fix opportunities appear"""
        output = await synthesizer.synthesize(workspace_id, WEEK)

        assert output.top_risks[0].title == "Operational risk"
        assert output.top_risks[0].severity == Severity.HIGH
        assert "Refund rate spike" in {r.title for r in output.top_risks}
        assert len(output.top_risks) <= 7
        titles = [o.title for o in output.opportunities]
        assert "Restock fast-moving SKUs" in titles
        assert "Fix high severity order issues" in titles
        ranks = [o.impact.rank for o in output.opportunities]
        assert ranks == sorted(ranks, reverse=True)

    async def test_margin_compared_with_preceding_week(self, synthesizer, workspace_id, busy_week):
        """Test the margin entry carries the change against the preceding week"""
        output = await synthesizer.synthesize(workspace_id, WEEK)

        entry = next(r for r in output.top_risks if r.title == "Margin leakage")
        assert Decimal(entry.evidence["marginPct"]["value"]) == Decimal("0.88")
        assert Decimal(entry.evidence["marginPct"]["delta"]) == Decimal("-0.1")
        assert entry.evidence["compareTo"] == {"from": "2025-01-01", "to": "2025-01-07"}
        assert [d["label"] for d in entry.evidence["drivers"]] == ["refundsAmount", "feesAmount"]

    async def test_empty_workspace(self, synthesizer, workspace_id):
        """Test an empty workspace still yields a complete low-risk document"""
        output = await synthesizer.synthesize(workspace_id, WEEK)

        assert output.top_risks[0].severity == Severity.LOW
        assert output.opportunities == []
        assert len(output.next_7_days_plan) == 7


class TestPlanService:
    """Tests for persisted plans"""

    async def test_create_and_get(self, session_factory, synthesizer, workspace_id, busy_week):
        """Test a created plan can be read back unchanged"""
        service = PlanService(session_factory, synthesizer)

        created = await service.create_plan(workspace_id, WEEK, title="Week 2")
        fetched = await service.get_plan(workspace_id, uuid.UUID(created.id))

        assert isinstance(fetched, PlanView)
        assert fetched.title == "Week 2"
        assert fetched.status == "draft"
        assert fetched.range == {"from": "2025-01-08", "to": "2025-01-14"}
        assert fetched.result == created.result
        assert "next7DaysPlan" in fetched.result
        assert fetched.assumptions["dateRange"] == {"from": "2025-01-08", "to": "2025-01-14"}

    async def test_get_missing_or_foreign_plan(self, session_factory, synthesizer, workspace_id):
        """Test unknown ids and other workspaces' plans are not found"""
        service = PlanService(session_factory, synthesizer)
        created = await service.create_plan(workspace_id, WEEK)

        missing = await service.get_plan(workspace_id, uuid.uuid4())
        foreign = await service.get_plan(uuid.uuid4(), uuid.UUID(created.id))

        assert isinstance(missing, NotFoundResult)
        assert missing.code == NotFoundCode.PLAN_NOT_FOUND
        assert missing.ok is False
        assert isinstance(foreign, NotFoundResult)

    async def test_list_newest_first_with_paging(self, session_factory, synthesizer, workspace_id):
        """Test plans list newest first in pages with a total"""
        service = PlanService(session_factory, synthesizer)
        for title in ("one", "two", "three"):
            await service.create_plan(workspace_id, WEEK, title=title)

        first = await service.list_plans(workspace_id, page=1, page_size=2)
        second = await service.list_plans(workspace_id, page=2, page_size=2)

        assert first.total == second.total == 3
        assert [p.title for p in first.items] == ["three", "two"]
        assert [p.title for p in second.items] == ["one"]

    async def test_list_filters_by_creation_day(self, session_factory, synthesizer, workspace_id):
        """Test the created-at filter includes the whole end day"""
        service = PlanService(session_factory, synthesizer)
        await service.create_plan(workspace_id, WEEK)
        today = utcnow().date()

        included = await service.list_plans(workspace_id, created_from=today - timedelta(days=1), created_to=today)
        excluded = await service.list_plans(workspace_id, created_to=today - timedelta(days=1))

        assert included.total == 1
        assert excluded.total == 0
        assert excluded.items == []


class TestForecastService:
    """Tests for naive forecasts"""

    @pytest.fixture
    def service(self, session_factory, analytics_settings) -> ForecastService:
        return ForecastService(session_factory, analytics_settings)

    async def test_workspace_forecast(self, service, builder, workspace_id):
        """Test averages divide by calendar days, not days with data"""
        builder.daily_metric(date(2025, 1, 1), "100", orders=2)
        builder.daily_metric(date(2025, 1, 3), "200", orders=4)
        await builder.save()

        forecast = await service.create_forecast(workspace_id, DateRange(date(2025, 1, 1), date(2025, 1, 4)), 3)

        result = forecast.result
        assert result["method"] == METHOD
        assert result["level"] == "workspace"
        assert result["start"] == "2025-01-05"
        assert Decimal(result["dailyAverage"]["revenue"]) == Decimal("75")
        assert Decimal(result["dailyAverage"]["orders"]) == Decimal("1.5")
        assert Decimal(result["totals"]["revenue"]) == Decimal("225")
        assert [p["date"] for p in result["points"]] == ["2025-01-05", "2025-01-06", "2025-01-07"]
        assert forecast.assumptions["trainingWindow"]["daysWithData"] == 2
        assert forecast.assumptions["trainingWindow"]["daysInRange"] == 4

    async def test_sku_forecast(self, service, builder, workspace_id):
        """Test a SKU forecast uses SKU rollups and has no orders figure"""
        mug = builder.product("MUG")
        builder.sku_metric(mug, date(2025, 1, 2), units=10, revenue="100")
        await builder.save()

        forecast = await service.create_forecast(
            workspace_id, DateRange(date(2025, 1, 1), date(2025, 1, 5)), horizon_days=2, sku="MUG"
        )

        assert forecast.result["level"] == "sku"
        assert forecast.result["sku"] == "MUG"
        assert forecast.result["productId"] == str(mug.id)
        assert Decimal(forecast.result["dailyAverage"]["units"]) == Decimal("2")
        assert forecast.result["points"][0]["orders"] is None

    async def test_unknown_sku_and_product(self, service, workspace_id):
        """Test unknown SKUs and product ids return typed misses"""
        window = DateRange(date(2025, 1, 1), date(2025, 1, 5))

        by_sku = await service.create_forecast(workspace_id, window, sku="NOPE")
        by_id = await service.create_forecast(workspace_id, window, product_id=uuid.uuid4())

        assert by_sku.code == NotFoundCode.SKU_NOT_FOUND
        assert by_id.code == NotFoundCode.PRODUCT_NOT_FOUND

    async def test_get_forecast(self, service, workspace_id):
        """Test a stored forecast is returned and unknown ids are not found"""
        created = await service.create_forecast(workspace_id, DateRange(date(2025, 1, 1), date(2025, 1, 1)))

        fetched = await service.get_forecast(workspace_id, uuid.UUID(created.id))
        missing = await service.get_forecast(workspace_id, uuid.uuid4())

        assert isinstance(fetched, ForecastView)
        assert fetched.result["horizonDays"] == 14
        assert fetched.range == {"from": "2025-01-01", "to": "2025-01-01"}
        assert missing.code == NotFoundCode.FORECAST_NOT_FOUND

    def test_horizon_clamp(self, service):
        """Test horizons are clamped into 1..365"""
        assert service.clamp_horizon(0) == 1
        assert service.clamp_horizon(None) == 14
        assert service.clamp_horizon(10_000) == 365
