"""Harvest summary (icmal) over submitted entries."""
import logging
from datetime import UTC, datetime
from decimal import Decimal

from sqlmodel import Session, col, select

from models import STATUS_SUBMITTED, Campus, Garden, HarvestEntry
from reconciliation import HUNDRED, ZERO, reconcile
from schemas import SummaryFilters, SummaryResponse, SummaryRow, SummaryTotals
from traders import TraderDirectory

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 500


def build_row(entry: HarvestEntry, garden: Garden | None, campus: Campus | None) -> SummaryRow:
    """Apply the reconciliation formulas to one submitted entry."""
    metrics = reconcile(entry)
    price = entry.price_per_kg if entry.price_per_kg is not None else ZERO
    grade1_total = metrics.grade1_revenue if metrics.grade1_revenue is not None else ZERO
    grade2_total = metrics.grade2_revenue if metrics.grade2_revenue is not None else ZERO
    net_total = grade1_total + grade2_total
    return SummaryRow(
        id=entry.id,
        harvest_date=entry.date,
        trader_name=entry.trader_name or "",
        garden_name=garden.name if garden else "",
        campus_name=campus.name if campus else "",
        grade1_kg=entry.grade1_kg if entry.grade1_kg is not None else ZERO,
        grade2_kg=entry.grade2_kg if entry.grade2_kg is not None else ZERO,
        total_kg=metrics.total_kg,
        sale_price=price,
        total_amount=net_total if price > 0 else None,
        scale_full_kg=entry.independent_scale_full_kg,
        scale_empty_kg=entry.independent_scale_empty_kg,
        scale_diff=metrics.scale_diff_kg,
        second_ratio=metrics.second_ratio_pct,
        second_ratio_high=metrics.second_ratio_high,
        scale_gap=metrics.scale_gap_kg,
        scale_diff_pct=metrics.scale_gap_pct,
        scale_gap_high=metrics.scale_gap_high,
        grade1_total=grade1_total,
        grade2_total=grade2_total,
        net_total=net_total,
    )


def calculate_totals(rows: list[SummaryRow]) -> SummaryTotals:
    """Column sums; ratios are derived from the sums, not averaged per row."""
    sum_grade1 = sum((r.grade1_kg for r in rows), ZERO)
    sum_grade2 = sum((r.grade2_kg for r in rows), ZERO)
    sum_total_kg = sum((r.total_kg for r in rows), ZERO)
    sum_full = sum((r.scale_full_kg for r in rows if r.scale_full_kg is not None), ZERO)
    sum_empty = sum((r.scale_empty_kg for r in rows if r.scale_empty_kg is not None), ZERO)
    sum_scale_diff = sum_full - sum_empty
    sum_grade1_total = sum((r.grade1_total for r in rows), ZERO)
    sum_grade2_total = sum((r.grade2_total for r in rows), ZERO)
    sum_net_total = sum((r.net_total for r in rows), ZERO)

    has_kg = sum_total_kg > 0
    return SummaryTotals(
        sum_grade1=sum_grade1,
        sum_grade2=sum_grade2,
        sum_total_kg=sum_total_kg,
        sum_full=sum_full,
        sum_empty=sum_empty,
        sum_scale_diff=sum_scale_diff,
        second_ratio_total=(sum_grade2 / sum_total_kg) * HUNDRED if has_kg else None,
        sum_scale_gap=sum_scale_diff - sum_total_kg if has_kg else None,
        avg_price=sum_net_total / sum_total_kg if has_kg else None,
        sum_grade1_total=sum_grade1_total,
        sum_grade2_total=sum_grade2_total,
        sum_net_total=sum_net_total,
    )


class HarvestSummaryAggregator:
    def __init__(self, session: Session, log: logging.Logger | None = None):
        self.session = session
        self.log = log or logger

    def summarize(self, tenant_id: str, filters: SummaryFilters | None = None) -> SummaryResponse:
        filters = filters or SummaryFilters()
        stmt = (
            select(HarvestEntry, Garden, Campus)
            .join(Garden, col(Garden.id) == col(HarvestEntry.garden_id), isouter=True)
            .join(Campus, col(Campus.id) == col(Garden.campus_id), isouter=True)
            .where(HarvestEntry.tenant_id == tenant_id)
            .where(HarvestEntry.status == STATUS_SUBMITTED)
        )
        if filters.year is not None:
            stmt = stmt.where(
                HarvestEntry.date >= datetime(filters.year, 1, 1, tzinfo=UTC),
                HarvestEntry.date < datetime(filters.year + 1, 1, 1, tzinfo=UTC),
            )
        if filters.garden_id is not None:
            stmt = stmt.where(HarvestEntry.garden_id == filters.garden_id)
        if filters.campus_id:
            stmt = stmt.where(Garden.campus_id == filters.campus_id)
        trader = (filters.trader or "").strip()
        if trader:
            stmt = stmt.where(col(HarvestEntry.trader_name).icontains(trader, autoescape=True))
        stmt = stmt.order_by(col(HarvestEntry.date).desc(), col(HarvestEntry.created_at).desc()).limit(SUMMARY_LIMIT)

        rows = [build_row(entry, garden, campus) for entry, garden, campus in self.session.exec(stmt).all()]
        totals = calculate_totals(rows)
        self.log.info(f"Summary for tenant {tenant_id}: {len(rows)} rows ({filters.model_dump(exclude_none=True)})")
        return SummaryResponse(rows=rows, totals=totals)

    def trader_names(self, tenant_id: str) -> list[str]:
        return [t.name for t in TraderDirectory(self.session, self.log).list_all(tenant_id)]
