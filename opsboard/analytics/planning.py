"""
Planning Synthesizer

Combines KPI totals, the risk detectors and a preceding-period comparison
into one planning document: status bullets, ranked risks, ranked
opportunities, a 7-day action plan and machine-readable assumptions.
Plans can be persisted as immutable records.
"""

import asyncio
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.aggregation import AggregationEngine
from opsboard.analytics.metrics import KpiTotals, Severity
from opsboard.analytics.numbers import fmt_money, fmt_pct, to_decimal
from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.results import ApiModel, NotFoundCode, NotFoundResult, RangedResult
from opsboard.analytics.risk import (
    LowStockRisk,
    MarginLeakage,
    OpsRisk,
    RiskService,
    SpikeRisk,
    StockoutRisk,
)
from opsboard.config import AnalyticsSettings, RiskThresholds, get_settings
from opsboard.database.models import Plan, PlanStatus, utcnow

logger = structlog.get_logger(__name__)

DAY_TEMPLATE = [
    (
        ["Review KPI status and the top risks with the team", "Confirm data freshness for orders, fees and refunds"],
        "Shared view of where the business stands and what matters this week",
    ),
    (
        ["Investigate the main refund reasons and fee drivers", "List the SKUs and channels contributing most to refunds and fees"],
        "Known drivers behind refund and fee rates",
    ),
    (
        ["Fix high severity order data issues", "Re-link orphan fees and refunds to their orders"],
        "Clean order data so KPIs and risk signals can be trusted",
    ),
    (
        ["Restock SKUs at stockout or low-stock risk", "Rebalance stock between locations where possible"],
        "Fewer stockouts on fast-moving SKUs",
    ),
    (
        ["Re-run KPI totals and risk checks", "Compare against the previous period"],
        "Measured effect of the actions taken so far",
    ),
    (
        ["Add preventive checks for recurring issues", "Adjust reorder points for fast movers"],
        "Recurring problems caught before they reach customers",
    ),
    (
        ["Document findings, decisions and owners", "Schedule the next planning review"],
        "Written record for the next planning cycle",
    ),
]

IGNORED_IN_THIS_VERSION = [
    "external market or competitor data",
    "advertising spend and attribution",
    "cost of goods (cogs is stored as 0)",
    "seasonality and statistical forecasting",
    "per-platform grouping distinct from channel",
]


class RiskEntry(ApiModel):
    title: str
    severity: Severity
    why: str
    evidence: Dict[str, Any]


class OpportunityEntry(ApiModel):
    title: str
    impact: Severity
    why: str
    actions: List[str]


class DayPlan(ApiModel):
    date: str
    actions: List[str]
    expected_outcome: str


class PlanningOutput(RangedResult):
    compare_to: Dict[str, str]
    status_bullets: List[str]
    top_risks: List[RiskEntry]
    opportunities: List[OpportunityEntry]
    next_7_days_plan: List[DayPlan] = Field(alias="next7DaysPlan")
    assumptions: Dict[str, Any]


def status_bullets(window: DateRange, totals: KpiTotals) -> List[str]:
    """Fixed-order, human-readable status lines."""
    return [
        f"Range: {window.start.isoformat()} to {window.end.isoformat()} (inclusive, UTC).",
        f"Revenue: {fmt_money(totals.revenue)} | Orders: {totals.orders} | Units: {totals.units}",
        f"Refund rate: {fmt_pct(totals.refund_rate)} | Fee rate: {fmt_pct(totals.fee_rate)}",
        f"Gross margin: {fmt_pct(totals.gross_margin_percent, scale=1)} | GM amount: {fmt_money(totals.gross_margin_amount)}",
        f"Stockouts (count): {totals.stockouts_count} | Low stock (count): {totals.low_stock_count}",
    ]


def rank_risks(
    ops: OpsRisk,
    stockouts: StockoutRisk,
    low_stock: LowStockRisk,
    margin: MarginLeakage,
    refund_spike: SpikeRisk,
    fee_spike: SpikeRisk,
    evidence_items: int = 5,
    cap: int = 7,
) -> List[RiskEntry]:
    entries = [
        RiskEntry(
            title="Operational risk",
            severity=ops.risk,
            why="Composite of order data issues, stockouts and low stock",
            evidence={s.code: s.value for s in ops.signals},
        )
    ]
    # one grouped entry per stock signal
    if stockouts.high_items:
        entries.append(
            RiskEntry(
                title="Stockouts detected",
                severity=Severity.HIGH,
                why=(
                    f"{len(stockouts.high_items)} inventory row(s) are out of stock or about to run out "
                    "at the current sales pace"
                ),
                evidence={
                    "items": [i.model_dump(mode="json", by_alias=True) for i in stockouts.high_items[:evidence_items]],
                },
            )
        )
    if low_stock.high_items:
        entries.append(
            RiskEntry(
                title="Very low stock",
                severity=Severity.MEDIUM,
                why=f"{len(low_stock.high_items)} inventory row(s) are at or below half the threshold of {low_stock.threshold}",
                evidence={
                    "items": [i.model_dump(mode="json", by_alias=True) for i in low_stock.high_items[:evidence_items]],
                    "threshold": low_stock.threshold,
                },
            )
        )
    entries.append(
        RiskEntry(
            title="Margin leakage",
            severity=margin.risk,
            why=f"Margin after refunds and fees is {fmt_pct(margin.margin_pct.value)}",
            evidence={
                "marginPct": margin.margin_pct.model_dump(mode="json", by_alias=True),
                "drivers": [d.model_dump(mode="json", by_alias=True) for d in margin.drivers],
                "compareTo": margin.compare_to,
            },
        )
    )
    for spike in (refund_spike, fee_spike):
        entries.append(
            RiskEntry(
                title=f"{spike.kind.capitalize()} rate spike",
                severity=spike.risk,
                why=(
                    f"{spike.kind.capitalize()} rate {fmt_pct(spike.rate.value)} versus "
                    f"{fmt_pct(spike.previous_rate)} in the previous period"
                ),
                evidence=spike.rate.model_dump(mode="json", by_alias=True),
            )
        )
    # sort is stable: equal severities keep the order above
    entries.sort(key=lambda e: e.severity.rank, reverse=True)
    return entries[:cap]


def rank_opportunities(
    totals: KpiTotals,
    ops: OpsRisk,
    stockouts: StockoutRisk,
    low_stock: LowStockRisk,
    margin: MarginLeakage,
    thresholds: RiskThresholds,
    cap: int = 7,
) -> List[OpportunityEntry]:
    opportunities = []

    fee_rate = totals.fee_rate
    if fee_rate is not None and fee_rate > to_decimal(thresholds.opportunity_fee_rate):
        opportunities.append(
            OpportunityEntry(
                title="Reduce fee rate",
                impact=Severity.HIGH if fee_rate > to_decimal(thresholds.opportunity_fee_rate_high) else Severity.MEDIUM,
                why=f"Fees take {fmt_pct(fee_rate)} of revenue",
                actions=["Review payment and marketplace fee tiers", "Shift volume toward lower-fee channels"],
            )
        )

    refund_rate = totals.refund_rate
    if refund_rate is not None and refund_rate > to_decimal(thresholds.opportunity_refund_rate):
        opportunities.append(
            OpportunityEntry(
                title="Reduce refunds",
                impact=(
                    Severity.HIGH if refund_rate > to_decimal(thresholds.opportunity_refund_rate_high)
                    else Severity.MEDIUM
                ),
                why=f"Refunds are {fmt_pct(refund_rate)} of revenue",
                actions=["Group refunds by reason and SKU", "Fix listing, sizing or quality issues behind the top reasons"],
            )
        )

    if stockouts.high_items or low_stock.high_items:
        opportunities.append(
            OpportunityEntry(
                title="Restock fast-moving SKUs",
                impact=Severity.HIGH if stockouts.high_items else Severity.MEDIUM,
                why=(
                    f"{len(stockouts.high_items)} stockout-risk and {len(low_stock.high_items)} low-stock "
                    "inventory row(s) need attention"
                ),
                actions=["Place replenishment orders for at-risk SKUs", "Raise reorder points for fast movers"],
            )
        )

    if any(s.code == "order_issues_high" and s.severity == Severity.HIGH for s in ops.signals):
        opportunities.append(
            OpportunityEntry(
                title="Fix high severity order issues",
                impact=Severity.HIGH,
                why="High severity order data issues distort revenue, refund and fee figures",
                actions=["Work through the sample order ids of each issue", "Add validation at ingestion"],
            )
        )

    margin_pct = margin.margin_pct.value
    if margin_pct is not None and margin_pct < to_decimal(thresholds.margin_medium):
        opportunities.append(
            OpportunityEntry(
                title="Improve margin percent",
                impact=Severity.HIGH if margin_pct < to_decimal(thresholds.margin_high) else Severity.MEDIUM,
                why=f"Margin after refunds and fees is {fmt_pct(margin_pct)}",
                actions=["Revisit discounting and pricing on low-margin SKUs", "Cut refund and fee leakage"],
            )
        )

    opportunities.sort(key=lambda o: o.impact.rank, reverse=True)
    return opportunities[:cap]


def seven_day_plan(window: DateRange) -> List[DayPlan]:
    return [
        DayPlan(date=day.isoformat(), actions=list(actions), expected_outcome=outcome)
        for day, (actions, outcome) in zip(window.following_days(len(DAY_TEMPLATE)), DAY_TEMPLATE)
    ]


def build_assumptions(window: DateRange, compare: DateRange) -> Dict[str, Any]:
    return {
        "noExternalWebData": True,
        "dateRange": window.as_dict(),
        "dataScope": {
            "sources": ["DailyMetric", "SkuDailyMetric", "Order", "OrderItem", "Fee", "Refund", "Inventory"],
            "notes": "Inventory figures are the current snapshot, not historical balances.",
        },
        "compareRangeUsedForSpikeChecks": compare.as_dict(),
        "ignoredInThisVersion": list(IGNORED_IN_THIS_VERSION),
    }


class PlanningSynthesizer:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: Optional[RiskThresholds] = None,
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._thresholds = thresholds or get_settings().risk
        self._settings = settings or get_settings().analytics
        self._aggregation = AggregationEngine(session_factory, self._thresholds)
        self._risks = RiskService(session_factory, self._thresholds, self._settings)

    async def synthesize(self, workspace_id: uuid.UUID, window: DateRange) -> PlanningOutput:
        compare = window.preceding()
        ranges = ComparativeRange(window, compare)
        stock_limit = self._settings.planning_stock_limit

        totals, ops, stockouts, low_stock, margin, refund_spike, fee_spike = await asyncio.gather(
            self._aggregation.kpi_totals(workspace_id, window),
            self._risks.ops_risk(workspace_id, window),
            self._risks.stockout_risk(workspace_id, window, self._thresholds.default_horizon_days, stock_limit),
            self._risks.low_stock_risk(
                workspace_id, window, self._thresholds.default_low_stock_threshold, stock_limit
            ),
            self._risks.margin_leakage(workspace_id, ranges),
            self._risks.refund_spike(workspace_id, ranges),
            self._risks.fee_spike(workspace_id, ranges),
        )

        cap = self._settings.planning_list_cap
        return PlanningOutput(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=(
                "Synthesized from KPI totals, ops risk, stock risk, margin leakage and refund/fee spikes "
                "against the preceding range of equal length. No external data is used."
            ),
            compare_to=compare.as_dict(),
            status_bullets=status_bullets(window, totals),
            top_risks=rank_risks(
                ops, stockouts, low_stock, margin, refund_spike, fee_spike,
                evidence_items=self._settings.planning_evidence_items, cap=cap,
            ),
            opportunities=rank_opportunities(totals, ops, stockouts, low_stock, margin, self._thresholds, cap=cap),
            next_7_days_plan=seven_day_plan(window),
            assumptions=build_assumptions(window, compare),
        )


# =============================================================================
# PERSISTED PLANS
# =============================================================================

class PlanView(ApiModel):
    id: str
    workspace_id: str
    title: Optional[str] = None
    status: str
    range: Dict[str, str]
    result: Dict[str, Any]
    assumptions: Dict[str, Any]
    created_at: datetime
    note: str = "Immutable snapshot of the planning output for the range, taken when the plan was created."

    @classmethod
    def from_row(cls, row: Plan) -> "PlanView":
        return cls(
            id=str(row.id),
            workspace_id=str(row.workspace_id),
            title=row.title,
            status=row.status,
            range={"from": row.range_from.isoformat(), "to": row.range_to.isoformat()},
            result=row.result,
            assumptions=row.assumptions,
            created_at=row.created_at,
        )


class PlanPage(ApiModel):
    items: List[PlanView]
    total: int
    page: int
    page_size: int
    note: str = "Plans newest first; the created-day filter is inclusive and uses UTC days."


class PlanService:
    """Creates immutable plan snapshots and reads them back"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], synthesizer: Optional[PlanningSynthesizer] = None):
        self._session_factory = session_factory
        self._synthesizer = synthesizer or PlanningSynthesizer(session_factory)

    async def create_plan(self, workspace_id: uuid.UUID, window: DateRange, title: Optional[str] = None) -> PlanView:
        output = await self._synthesizer.synthesize(workspace_id, window)
        plan = Plan(
            id=uuid.uuid4(),
            workspace_id=workspace_id,
            title=title,
            status=PlanStatus.DRAFT.value,
            range_from=window.start,
            range_to=window.end,
            result=output.model_dump(mode="json", by_alias=True),
            assumptions=output.assumptions,
            created_at=utcnow(),
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(plan)
        logger.info("Plan created", workspace_id=str(workspace_id), plan_id=str(plan.id), range=str(window))
        return PlanView.from_row(plan)

    async def list_plans(
        self,
        workspace_id: uuid.UUID,
        created_from: Optional[date] = None,
        created_to: Optional[date] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> PlanPage:
        """Newest first; ``created_to`` includes the whole day."""
        page = max(1, page)
        page_size = max(1, min(200, page_size))
        filters = [Plan.workspace_id == workspace_id]
        if created_from is not None:
            filters.append(Plan.created_at >= datetime.combine(created_from, datetime.min.time()))
        if created_to is not None:
            filters.append(Plan.created_at < datetime.combine(created_to + timedelta(days=1), datetime.min.time()))

        async with self._session_factory() as session:
            total = (await session.execute(select(func.count()).select_from(Plan).where(*filters))).scalar_one()
            rows = (
                await session.execute(
                    select(Plan)
                    .where(*filters)
                    .order_by(Plan.created_at.desc(), Plan.id)
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
            ).scalars().all()
        return PlanPage(items=[PlanView.from_row(r) for r in rows], total=total, page=page, page_size=page_size)

    async def get_plan(self, workspace_id: uuid.UUID, plan_id: uuid.UUID) -> Union[PlanView, NotFoundResult]:
        async with self._session_factory() as session:
            row = (
                await session.execute(select(Plan).where(Plan.workspace_id == workspace_id, Plan.id == plan_id))
            ).scalar_one_or_none()
        if row is None:
            return NotFoundResult(code=NotFoundCode.PLAN_NOT_FOUND, message=f"Plan {plan_id} not found")
        return PlanView.from_row(row)
