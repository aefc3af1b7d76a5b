"""Reconciliation metrics for a single harvest entry.

Pure functions over an entry's field values. Quantities are ``Decimal``;
``None`` means "cannot compute". Only ``total_kg`` treats missing grades as
zero. Divisions by zero or by a non-positive scale difference return ``None``.
"""
from dataclasses import dataclass
from decimal import Decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Anomaly thresholds in percent; a value is "high" only when strictly above.
SECOND_RATIO_HIGH_PCT = Decimal("5")
SCALE_GAP_HIGH_PCT = Decimal("5")

# Second grade is always priced at half the first-grade rate.
GRADE2_PRICE_FACTOR = Decimal("0.5")


def _dec(value) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def total_kg(e) -> Decimal:
    g1 = _dec(e.grade1_kg)
    g2 = _dec(e.grade2_kg)
    return (g1 if g1 is not None else ZERO) + (g2 if g2 is not None else ZERO)


def second_ratio_pct(e) -> Decimal | None:
    g2 = _dec(e.grade2_kg)
    total = total_kg(e)
    if g2 is None or total <= 0:
        return None
    return (g2 / total) * HUNDRED


def grade1_revenue(e) -> Decimal | None:
    price = _dec(e.price_per_kg)
    g1 = _dec(e.grade1_kg)
    if price is None or g1 is None:
        return None
    return g1 * price


def grade2_revenue(e) -> Decimal | None:
    price = _dec(e.price_per_kg)
    g2 = _dec(e.grade2_kg)
    if price is None or g2 is None:
        return None
    return g2 * (price * GRADE2_PRICE_FACTOR)


def net_revenue(e) -> Decimal | None:
    # Third-grade revenue is deliberately not part of the net figure.
    g1 = grade1_revenue(e)
    g2 = grade2_revenue(e)
    if g1 is None or g2 is None:
        return None
    return g1 + g2


def third_revenue(e) -> Decimal | None:
    kg = _dec(e.third_kg)
    price = _dec(e.third_price_per_kg)
    if kg is None or price is None:
        return None
    return kg * price


def scale_diff_kg(e) -> Decimal | None:
    """Net weight according to the independent scale."""
    full = _dec(e.independent_scale_full_kg)
    empty = _dec(e.independent_scale_empty_kg)
    if full is None or empty is None:
        return None
    return full - empty


def trader_scale_diff_kg(e) -> Decimal | None:
    full = _dec(e.trader_scale_full_kg)
    empty = _dec(e.trader_scale_empty_kg)
    if full is None or empty is None:
        return None
    return full - empty


def scale_gap_kg(e) -> Decimal | None:
    diff = scale_diff_kg(e)
    total = total_kg(e)
    if diff is None or total <= 0:
        return None
    return diff - total


def scale_gap_pct(e) -> Decimal | None:
    diff = scale_diff_kg(e)
    gap = scale_gap_kg(e)
    if diff is None or diff <= 0 or gap is None:
        return None
    return (abs(gap) / diff) * HUNDRED


def is_high(pct: Decimal | None, threshold: Decimal) -> bool:
    return pct is not None and pct > threshold


@dataclass(frozen=True)
class Reconciliation:
    total_kg: Decimal
    second_ratio_pct: Decimal | None
    grade1_revenue: Decimal | None
    grade2_revenue: Decimal | None
    net_revenue: Decimal | None
    third_revenue: Decimal | None
    scale_diff_kg: Decimal | None
    scale_gap_kg: Decimal | None
    scale_gap_pct: Decimal | None
    trader_scale_diff_kg: Decimal | None

    @property
    def second_ratio_high(self) -> bool:
        return is_high(self.second_ratio_pct, SECOND_RATIO_HIGH_PCT)

    @property
    def scale_gap_high(self) -> bool:
        return is_high(self.scale_gap_pct, SCALE_GAP_HIGH_PCT)


def reconcile(e) -> Reconciliation:
    """Compute every metric for one entry."""
    return Reconciliation(
        total_kg=total_kg(e),
        second_ratio_pct=second_ratio_pct(e),
        grade1_revenue=grade1_revenue(e),
        grade2_revenue=grade2_revenue(e),
        net_revenue=net_revenue(e),
        third_revenue=third_revenue(e),
        scale_diff_kg=scale_diff_kg(e),
        scale_gap_kg=scale_gap_kg(e),
        scale_gap_pct=scale_gap_pct(e),
        trader_scale_diff_kg=trader_scale_diff_kg(e),
    )
