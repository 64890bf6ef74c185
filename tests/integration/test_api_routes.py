"""
Integration Tests - HTTP API
"""
import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def base(workspace_id) -> str:
    return f"/api/v1/workspaces/{workspace_id}"


@pytest.fixture
async def seeded(builder):
    """Two rollup days and one raw order with an item"""
    mug = builder.product("MUG")
    shelf = builder.location("SHELF")
    builder.daily_metric(date(2025, 1, 1), "100", refunds="10", fees="5")
    builder.daily_metric(date(2025, 1, 2), "200", refunds="0", fees="5")
    order = builder.order(datetime(2025, 1, 2, 12), items=[(mug, 2, "100", shelf)], channel="shopify")
    builder.fee("5", order)
    builder.inventory(mug, shelf, 4)
    await builder.save()


class TestHealth:
    """Tests for health endpoints"""

    async def test_health(self, client):
        """Test the health endpoint reports a healthy database"""
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    async def test_ready_and_live(self, client):
        """Test readiness and liveness probes"""
        assert (await client.get("/api/v1/health/ready")).json() == {"status": "ready"}
        assert (await client.get("/api/v1/health/live")).json() == {"status": "alive"}

    async def test_request_id_header(self, client):
        """Test responses carry request id and timing headers"""
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time" in response.headers


class TestAnalyticsRoutes:
    """Tests for KPI, breakdown and mover endpoints"""

    async def test_kpi_summary(self, client, base, seeded):
        """Test the summary echoes the range and serializes decimals as strings"""
        response = await client.get(f"{base}/kpis/summary", params={"from": "2025-01-01", "to": "2025-01-02"})

        assert response.status_code == 200
        body = response.json()
        assert body["range"] == {"from": "2025-01-01", "to": "2025-01-02"}
        assert body["source"] == "daily_metric"
        assert body["daysInclusive"] == 2
        assert Decimal(body["totals"]["revenue"]) == Decimal("300")
        assert Decimal(body["totals"]["refundRate"]).quantize(Decimal("0.0001")) == Decimal("0.0333")

    @pytest.mark.parametrize(
        "params",
        [
            {"from": "2025-02-30", "to": "2025-03-01"},
            {"from": "2025/01/01", "to": "2025-01-02"},
            {"from": "2025-01-01", "to": "tomorrow"},
        ],
    )
    async def test_invalid_range(self, client, base, params):
        """Test malformed dates are rejected with a 400 invalid_range error"""
        response = await client.get(f"{base}/kpis/summary", params=params)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_range"

    async def test_half_comparison_rejected(self, client, base):
        """Test compareFrom without compareTo is rejected"""
        response = await client.get(
            f"{base}/kpis/deltas", params={"from": "2025-01-08", "to": "2025-01-14", "compareFrom": "2025-01-01"}
        )

        assert response.status_code == 400

    async def test_missing_range_is_422(self, client, base):
        """Test a missing required range bound fails validation"""
        response = await client.get(f"{base}/kpis/summary", params={"from": "2025-01-01"})

        assert response.status_code == 422

    async def test_kpi_deltas(self, client, base, seeded):
        """Test deltas default to the preceding range"""
        response = await client.get(f"{base}/kpis/deltas", params={"from": "2025-01-02", "to": "2025-01-02"})

        body = response.json()
        assert response.status_code == 200
        assert body["compareTo"] == {"from": "2025-01-01", "to": "2025-01-01"}
        assert Decimal(body["metrics"]["revenue"]["delta"]) == Decimal("100")
        assert Decimal(body["metrics"]["revenue"]["deltaPct"]) == Decimal("1")

    async def test_trends(self, client, base, seeded):
        """Test trend metrics are parsed from a comma-separated list"""
        response = await client.get(
            f"{base}/kpis/trends", params={"from": "2025-01-01", "to": "2025-01-05", "metrics": "revenue,feesAmount"}
        )

        body = response.json()
        assert body["metrics"] == ["revenue", "feesAmount"]
        assert [p["day"] for p in body["points"]] == ["2025-01-01", "2025-01-02"]
        assert set(body["points"][0]["values"]) == {"revenue", "feesAmount"}

    async def test_breakdown(self, client, base, seeded):
        """Test the channel breakdown over raw orders"""
        response = await client.get(
            f"{base}/breakdown", params={"from": "2025-01-01", "to": "2025-01-02", "by": "channel"}
        )

        body = response.json()
        assert response.status_code == 200
        assert body["by"] == "channel"
        assert body["rows"][0]["key"] == "shopify"
        assert Decimal(body["rows"][0]["feeRate"]) == Decimal("0.025")

    async def test_breakdown_rejects_unknown_dimension(self, client, base):
        """Test an unknown breakdown dimension fails validation"""
        response = await client.get(
            f"{base}/breakdown", params={"from": "2025-01-01", "to": "2025-01-02", "by": "colour"}
        )

        assert response.status_code == 422

    async def test_top_movers_defaults(self, client, base):
        """Test top movers default to revenue, up"""
        response = await client.get(f"{base}/top-movers", params={"from": "2025-01-01", "to": "2025-01-02"})

        body = response.json()
        assert (body["metric"], body["direction"], body["items"]) == ("revenue", "up", [])


class TestRiskRoutes:
    """Tests for risk endpoints"""

    async def test_low_stock_and_ops(self, client, base, seeded):
        """Test low stock uses the threshold parameter and ops risk combines signals"""
        params = {"from": "2025-01-01", "to": "2025-01-02"}

        low = (await client.get(f"{base}/risks/low-stock", params={**params, "threshold": 5})).json()
        ops = (await client.get(f"{base}/risks/ops", params=params)).json()

        assert [(i["sku"], i["risk"]) for i in low["items"]] == [("MUG", "medium")]
        # 4 on hand is at or below half the default threshold of 10
        assert ops["risk"] == "medium"
        assert [s["code"] for s in ops["signals"]] == ["order_issues_high", "stockout_high", "low_stock_high"]

    async def test_stockout_horizon_param(self, client, base, seeded):
        """Test the horizonDays parameter is read and echoed"""
        response = await client.get(
            f"{base}/risks/stockout", params={"from": "2025-01-01", "to": "2025-01-02", "horizonDays": 30}
        )

        assert response.json()["horizonDays"] == 30

    async def test_spikes_and_margin(self, client, base, seeded):
        """Test spike and margin endpoints respond with their risk level"""
        params = {"from": "2025-01-02", "to": "2025-01-02"}

        for path in ("refund-spike", "fee-spike", "margin-leakage", "order-issues"):
            response = await client.get(f"{base}/risks/{path}", params=params)
            assert response.status_code == 200, path

        margin = (await client.get(f"{base}/risks/margin-leakage", params=params)).json()
        assert Decimal(margin["marginPct"]["value"]) == Decimal("0.975")


class TestPlanningAndForecastRoutes:
    """Tests for planning, plan and forecast endpoints"""

    async def test_planning_output(self, client, base, seeded):
        """Test the planning document over HTTP"""
        response = await client.get(f"{base}/planning/output", params={"from": "2025-01-01", "to": "2025-01-07"})

        body = response.json()
        assert response.status_code == 200
        assert len(body["next7DaysPlan"]) == 7
        assert body["next7DaysPlan"][0]["date"] == "2025-01-08"

    async def test_plan_lifecycle(self, client, base, seeded):
        """Test creating, listing and fetching a plan"""
        created = await client.post(f"{base}/plans", json={"from": "2025-01-01", "to": "2025-01-07", "title": "Jan"})
        assert created.status_code == 201
        plan_id = created.json()["id"]

        listed = (await client.get(f"{base}/plans", params={"pageSize": 5})).json()
        fetched = await client.get(f"{base}/plans/{plan_id}")

        assert listed["total"] == 1
        assert listed["pageSize"] == 5
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Jan"
        assert listed["note"]
        assert fetched.json()["note"]
        assert all(item["note"] for item in listed["items"])

    async def test_plan_not_found(self, client, base):
        """Test an unknown plan id returns a typed 404"""
        response = await client.get(f"{base}/plans/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json() == {
            "ok": False,
            "code": "PLAN_NOT_FOUND",
            "message": response.json()["message"],
        }

    async def test_plan_with_bad_range(self, client, base):
        """Test an invalid plan range is a 400"""
        response = await client.post(f"{base}/plans", json={"from": "2025-13-01", "to": "2025-01-07"})

        assert response.status_code == 400

    async def test_forecast_lifecycle(self, client, base, seeded):
        """Test creating and fetching a forecast"""
        created = await client.post(
            f"{base}/forecasts", json={"from": "2025-01-01", "to": "2025-01-02", "horizonDays": 2}
        )
        assert created.status_code == 201
        body = created.json()
        assert body["result"]["horizonDays"] == 2

        fetched = await client.get(f"{base}/forecasts/{body['id']}")
        assert fetched.json()["id"] == body["id"]
        assert body["note"] and fetched.json()["note"] == body["note"]

    async def test_forecast_unknown_sku(self, client, base):
        """Test an unknown SKU returns a typed 404"""
        response = await client.post(f"{base}/forecasts", json={"from": "2025-01-01", "to": "2025-01-02", "sku": "NOPE"})

        assert response.status_code == 404
        assert response.json()["code"] == "SKU_NOT_FOUND"

    async def test_forecast_not_found(self, client, base):
        """Test an unknown forecast id returns a typed 404"""
        response = await client.get(f"{base}/forecasts/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["code"] == "FORECAST_NOT_FOUND"


class TestRollupRoutes:
    """Tests for the manual rollup trigger"""

    async def test_materialize(self, client, base, builder):
        """Test a manual run materializes each day and reports it"""
        mug = builder.product("MUG")
        builder.order(datetime(2025, 3, 1, 12), items=[(mug, 1, "12.5")])
        await builder.save()

        response = await client.post(f"{base}/rollups/materialize", json={"from": "2025-03-01", "to": "2025-03-02"})

        body = response.json()
        assert response.status_code == 200
        assert [d["day"] for d in body["days"]] == ["2025-03-01", "2025-03-02"]
        assert Decimal(body["days"][0]["revenue"]) == Decimal("12.5")
        assert body["days"][1]["orders"] == 0
        assert "replaced in full" in body["note"]

        summary = (await client.get(f"{base}/kpis/summary", params={"from": "2025-03-01", "to": "2025-03-02"})).json()
        assert summary["source"] == "daily_metric"
