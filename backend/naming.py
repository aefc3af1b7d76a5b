"""Per-day harvest labels: "DD.MM.YYYY - N. Araba".

N is the smallest positive number not yet used by another entry of the same
tenant on the same calendar day, so deleted numbers are handed out again.
"""
import logging
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from models import HarvestDaySequence, HarvestEntry, utcnow

logger = logging.getLogger(__name__)

NAME_SUFFIX = ". Araba"
# Entry dates are stored at this time of day to stay clear of timezone edges.
ENTRY_TIME_OF_DAY = time(12, 0)


def calendar_day(value: date | datetime) -> date:
    """The UTC calendar day of a date or datetime; naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


def normalize_entry_date(value: date | datetime) -> datetime:
    return datetime.combine(calendar_day(value), ENTRY_TIME_OF_DAY, tzinfo=UTC)


def day_window(value: date | datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(calendar_day(value), time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def name_prefix(value: date | datetime) -> str:
    value = calendar_day(value)
    return f"{value.day:02d}.{value.month:02d}.{value.year} - "


def parse_sequence(name: str | None, prefix: str) -> int | None:
    """Return N for a name of the form prefix + N + suffix, else None."""
    if not name or not name.startswith(prefix) or not name.endswith(NAME_SUFFIX):
        return None
    body = name[len(prefix):len(name) - len(NAME_SUFFIX)]
    if not body.isdigit():
        return None
    n = int(body)
    return n if n >= 1 else None


def first_free_number(used: Iterable[int]) -> int:
    n = 1
    for u in sorted(set(used)):
        if u > n:
            break
        n = u + 1
    return n


def format_name(value: date | datetime, n: int) -> str:
    return f"{name_prefix(value)}{n}{NAME_SUFFIX}"


class HarvestNameSequencer:
    def __init__(self, session: Session, log: logging.Logger | None = None):
        self.session = session
        self.log = log or logger

    def lock_day(self, tenant_id: str, value: date | datetime) -> HarvestDaySequence:
        """Take the (tenant, day) lock row for the rest of the transaction."""
        day = calendar_day(value)
        stmt = (
            select(HarvestDaySequence)
            .where(HarvestDaySequence.tenant_id == tenant_id, HarvestDaySequence.day == day)
            .with_for_update()
        )
        row = self.session.exec(stmt).first()
        if row is None:
            try:
                with self.session.begin_nested():
                    row = HarvestDaySequence(tenant_id=tenant_id, day=day)
                    self.session.add(row)
            except IntegrityError:
                # Another transaction created it first; wait on its lock instead.
                row = self.session.exec(stmt).one()
        row.generation += 1
        row.updated_at = utcnow()
        self.session.add(row)
        self.session.flush()
        return row

    def used_numbers(self, tenant_id: str, value: date | datetime, exclude_entry_id: str | None = None) -> set[int]:
        start, end = day_window(value)
        stmt = select(HarvestEntry.name).where(
            HarvestEntry.tenant_id == tenant_id,
            HarvestEntry.date >= start,
            HarvestEntry.date < end,
        )
        if exclude_entry_id is not None:
            stmt = stmt.where(HarvestEntry.id != exclude_entry_id)
        prefix = name_prefix(value)
        used = set()
        for name in self.session.exec(stmt).all():
            n = parse_sequence(name, prefix)
            if n is not None:
                used.add(n)
        return used

    def compute_name(self, tenant_id: str, value: date | datetime, exclude_entry_id: str | None = None) -> str:
        """Next free label for the day. Call inside the transaction that writes the entry."""
        self.lock_day(tenant_id, value)
        used = self.used_numbers(tenant_id, value, exclude_entry_id)
        name = format_name(value, first_free_number(used))
        self.log.debug(f"Assigned name '{name}' for tenant {tenant_id} (used: {sorted(used)})")
        return name
