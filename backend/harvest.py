"""Harvest entry lifecycle: draft -> submitted, or draft -> deleted.

Every public operation is atomic: it commits once on success and rolls the
session back on any failure.
"""
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlmodel import Session, col, select

from errors import InvalidArgumentError, InvalidStateError, NotFoundError, ValidationFailedError, Violation
from models import (
    PHOTO_CATEGORIES,
    PHOTO_TRADER_SLIP,
    STATUS_DRAFT,
    STATUS_SUBMITTED,
    Campus,
    Garden,
    HarvestEntry,
    HarvestPhoto,
    utcnow,
)
from naming import HarvestNameSequencer, calendar_day, day_window, normalize_entry_date
from photos import ALLOWED_CONTENT_TYPE, MAX_PHOTO_BYTES, LocalPhotoStorage, PhotoStorage
from reconciliation import reconcile
from schemas import NUMERIC_FIELDS, HarvestCreate, HarvestUpdate
from traders import TraderDirectory

logger = logging.getLogger(__name__)

LIST_LIMIT = 50
STATUSES = (STATUS_DRAFT, STATUS_SUBMITTED)


@dataclass(frozen=True)
class PhotoUpload:
    filename: str | None
    content_type: str | None
    content: bytes


def parse_entry_date(value: str | None, field: str = "date") -> date:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a calendar day."""
    if not value or not str(value).strip():
        raise InvalidArgumentError("Invalid date", field=field)
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid date: {value!r}", field=field) from e
    return calendar_day(parsed)


def check_quantities(values: dict) -> None:
    for field, value in values.items():
        if value is None:
            continue
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        if not value.is_finite() or value < 0:
            raise InvalidArgumentError(f"{field} must be a non-negative number", field=field)


def submission_violations(entry: HarvestEntry) -> list[Violation]:
    """Run every submission rule and collect all failures."""
    violations = []
    if entry.date is None:
        violations.append(Violation("date", "Tarih eksik."))
    if entry.garden_id is None:
        violations.append(Violation("garden_id", "Bahçe seçimi eksik."))
    if not (entry.trader_name or "").strip():
        violations.append(Violation("trader_name", "Tüccar adı zorunludur."))
    if entry.price_per_kg is None or entry.price_per_kg <= 0:
        violations.append(Violation("sale_price", "Satış fiyatı (kg) zorunludur ve 0'dan büyük olmalıdır."))
    if entry.grade1_kg is None:
        violations.append(Violation("grade1_kg", "1. sınıf kg zorunludur."))
    if entry.grade2_kg is None:
        violations.append(Violation("grade2_kg", "2. sınıf kg zorunludur."))
    if not any(p.category == PHOTO_TRADER_SLIP for p in entry.photos):
        violations.append(Violation("trader_receipt_photo", "En az bir tüccar fişi fotoğrafı yüklenmelidir."))
    if entry.third_kg is not None and entry.third_kg > 0:
        if entry.third_price_per_kg is None or entry.third_price_per_kg < 0:
            violations.append(
                Violation("third_price_per_kg", "3. sınıflandırma kg girildiyse fiyat (kg) zorunludur.")
            )
    return violations


class HarvestLifecycle:
    def __init__(
        self,
        session: Session,
        storage: PhotoStorage | None = None,
        log: logging.Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.storage = storage or LocalPhotoStorage()
        self.log = log or logger
        self.clock = clock
        self.traders = TraderDirectory(session, self.log)
        self.sequencer = HarvestNameSequencer(session, self.log)

    @contextmanager
    def _unit_of_work(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _garden(self, tenant_id: str, garden_id: int) -> Garden:
        garden = self.session.exec(
            select(Garden).where(Garden.id == garden_id, Garden.tenant_id == tenant_id)
        ).first()
        if garden is None:
            raise NotFoundError("Garden", garden_id)
        return garden

    def _entry(self, tenant_id: str, entry_id: str, lock: bool = False) -> HarvestEntry:
        stmt = select(HarvestEntry).where(HarvestEntry.id == entry_id, HarvestEntry.tenant_id == tenant_id)
        if lock:
            stmt = stmt.with_for_update()
        entry = self.session.exec(stmt).first()
        if entry is None:
            raise NotFoundError("Harvest entry", entry_id)
        return entry

    @staticmethod
    def _require_draft(entry: HarvestEntry, action: str) -> None:
        if entry.status != STATUS_DRAFT:
            raise InvalidStateError(f"Only draft harvest entries can {action}")

    def labels(self, entry: HarvestEntry) -> tuple[str | None, str | None]:
        """Garden and campus display names for an entry."""
        garden = self.session.get(Garden, entry.garden_id)
        if garden is None:
            return None, None
        campus = self.session.get(Campus, garden.campus_id)
        return garden.name, campus.name if campus else None

    def get(self, tenant_id: str, entry_id: str) -> HarvestEntry:
        return self._entry(tenant_id, entry_id)

    def list_entries(
        self,
        tenant_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
        status: str | None = None,
        garden_id: int | None = None,
    ) -> list[HarvestEntry]:
        stmt = select(HarvestEntry).where(HarvestEntry.tenant_id == tenant_id)
        if garden_id is not None:
            stmt = stmt.where(HarvestEntry.garden_id == garden_id)
        if status:
            if status not in STATUSES:
                raise InvalidArgumentError(f"Unknown status: {status!r}", field="status")
            stmt = stmt.where(HarvestEntry.status == status)
        if date_from:
            start, _ = day_window(parse_entry_date(date_from, "date_from"))
            stmt = stmt.where(HarvestEntry.date >= start)
        if date_to:
            _, end = day_window(parse_entry_date(date_to, "date_to"))
            stmt = stmt.where(HarvestEntry.date < end)
        stmt = stmt.order_by(col(HarvestEntry.date).desc(), col(HarvestEntry.created_at).desc()).limit(LIST_LIMIT)
        return list(self.session.exec(stmt).all())

    def create(self, tenant_id: str, data: HarvestCreate) -> HarvestEntry:
        day = parse_entry_date(data.date)
        check_quantities({f: getattr(data, f) for f in NUMERIC_FIELDS})

        with self._unit_of_work():
            self._garden(tenant_id, data.garden_id)
            trader = self.traders.find_or_create(tenant_id, data.trader_name)
            name = self.sequencer.compute_name(tenant_id, day)
            now = self.clock()
            entry = HarvestEntry(
                tenant_id=tenant_id,
                garden_id=data.garden_id,
                trader_id=trader.id,
                trader_name=trader.name,
                date=normalize_entry_date(day),
                name=name,
                status=STATUS_DRAFT,
                price_per_kg=data.price_per_kg if data.price_per_kg is not None else Decimal("0"),
                grade1_kg=data.grade1_kg,
                grade2_kg=data.grade2_kg,
                third_label=data.third_label,
                third_kg=data.third_kg,
                third_price_per_kg=data.third_price_per_kg,
                independent_scale_full_kg=data.independent_scale_full_kg,
                independent_scale_empty_kg=data.independent_scale_empty_kg,
                trader_scale_full_kg=data.trader_scale_full_kg,
                trader_scale_empty_kg=data.trader_scale_empty_kg,
                created_at=now,
                updated_at=now,
            )
            self.session.add(entry)

        self.session.refresh(entry)
        self.log.info(f"Created harvest draft {entry.id} '{entry.name}' for tenant {tenant_id}")
        return entry

    def update(self, tenant_id: str, entry_id: str, patch: HarvestUpdate) -> HarvestEntry:
        check_quantities({f: getattr(patch, f) for f in NUMERIC_FIELDS if patch.provided(f)})
        new_day = parse_entry_date(patch.date) if patch.date is not None else None

        with self._unit_of_work():
            entry = self._entry(tenant_id, entry_id, lock=True)
            self._require_draft(entry, "be updated")

            if new_day is not None:
                entry.name = self.sequencer.compute_name(tenant_id, new_day, exclude_entry_id=entry.id)
                entry.date = normalize_entry_date(new_day)
            if patch.garden_id is not None:
                self._garden(tenant_id, patch.garden_id)
                entry.garden_id = patch.garden_id
            if patch.trader_name is not None and patch.trader_name.strip():
                trader = self.traders.find_or_create(tenant_id, patch.trader_name)
                entry.trader_id = trader.id
                entry.trader_name = trader.name
            for field in NUMERIC_FIELDS + ("third_label",):
                if patch.provided(field):
                    setattr(entry, field, getattr(patch, field))
            entry.updated_at = self.clock()
            self.session.add(entry)

        self.session.refresh(entry)
        self.log.info(f"Updated harvest draft {entry.id} ({sorted(patch.model_fields_set)})")
        return entry

    def submit(self, tenant_id: str, entry_id: str) -> HarvestEntry:
        with self._unit_of_work():
            entry = self._entry(tenant_id, entry_id, lock=True)
            self._require_draft(entry, "be submitted")

            violations = submission_violations(entry)
            if violations:
                self.log.info(f"Submission of {entry.id} rejected: {[v.field for v in violations]}")
                raise ValidationFailedError(violations)

            now = self.clock()
            entry.status = STATUS_SUBMITTED
            entry.submitted_at = now
            entry.updated_at = now
            self.session.add(entry)

        self.session.refresh(entry)
        metrics = reconcile(entry)
        if metrics.scale_gap_high:
            self.log.warning(f"Harvest {entry.id} submitted with scale gap {metrics.scale_gap_pct:.2f}%")
        if metrics.second_ratio_high:
            self.log.warning(f"Harvest {entry.id} submitted with second ratio {metrics.second_ratio_pct:.2f}%")
        self.log.info(f"Submitted harvest {entry.id} '{entry.name}'")
        return entry

    def delete(self, tenant_id: str, entry_id: str) -> None:
        with self._unit_of_work():
            entry = self._entry(tenant_id, entry_id, lock=True)
            self._require_draft(entry, "be deleted")
            urls = [p.url for p in entry.photos]
            self.session.delete(entry)
        for url in urls:
            self.storage.delete(url)
        self.log.info(f"Deleted harvest draft {entry_id}")

    def attach_photos(
        self, tenant_id: str, harvest_id: str, category: str, uploads: list[PhotoUpload]
    ) -> list[HarvestPhoto]:
        if category not in PHOTO_CATEGORIES:
            raise InvalidArgumentError("Photo category must be GENERAL or TRADER_SLIP", field="category")
        if not uploads:
            raise InvalidArgumentError("No files uploaded", field="files")
        for upload in uploads:
            if not ALLOWED_CONTENT_TYPE.match(upload.content_type or ""):
                raise InvalidArgumentError("Invalid file type. Use image (jpeg/png/gif/webp/heic).", field="files")
            if len(upload.content) > MAX_PHOTO_BYTES:
                raise InvalidArgumentError("File exceeds the 5 MB limit", field="files")

        saved = []
        try:
            with self._unit_of_work():
                entry = self._entry(tenant_id, harvest_id, lock=True)
                self._require_draft(entry, "receive photo uploads")
                photos = []
                for upload in uploads:
                    url = self.storage.save(entry.id, upload.filename, upload.content)
                    saved.append(url)
                    photo = HarvestPhoto(harvest_id=entry.id, category=category, url=url, created_at=self.clock())
                    self.session.add(photo)
                    photos.append(photo)
        except Exception:
            # Nothing was recorded, so the stored binaries are orphans.
            for url in saved:
                self.storage.delete(url)
            raise

        for photo in photos:
            self.session.refresh(photo)
        self.log.info(f"Attached {len(photos)} {category} photo(s) to harvest {harvest_id}")
        return photos

    def delete_photo(self, tenant_id: str, harvest_id: str, photo_id: str) -> None:
        with self._unit_of_work():
            entry = self._entry(tenant_id, harvest_id, lock=True)
            self._require_draft(entry, "have photos removed")
            photo = self.session.exec(
                select(HarvestPhoto).where(HarvestPhoto.id == photo_id, HarvestPhoto.harvest_id == entry.id)
            ).first()
            if photo is None:
                raise NotFoundError("Photo", photo_id)
            url = photo.url
            self.session.delete(photo)
        self.storage.delete(url)
        self.log.info(f"Deleted photo {photo_id} from harvest {harvest_id}")
