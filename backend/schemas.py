from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from models import HarvestEntry, HarvestPhoto

# Patchable numeric fields; omitted keeps the stored value, explicit null clears it.
NUMERIC_FIELDS = (
    "price_per_kg",
    "grade1_kg",
    "grade2_kg",
    "third_kg",
    "third_price_per_kg",
    "independent_scale_full_kg",
    "independent_scale_empty_kg",
    "trader_scale_full_kg",
    "trader_scale_empty_kg",
)


class HarvestCreate(BaseModel):
    date: str  # YYYY-MM-DD format
    garden_id: int
    trader_name: str | None = None
    price_per_kg: Decimal | None = None
    grade1_kg: Decimal | None = None
    grade2_kg: Decimal | None = None
    third_label: str | None = None
    third_kg: Decimal | None = None
    third_price_per_kg: Decimal | None = None
    independent_scale_full_kg: Decimal | None = None
    independent_scale_empty_kg: Decimal | None = None
    trader_scale_full_kg: Decimal | None = None
    trader_scale_empty_kg: Decimal | None = None


class HarvestUpdate(BaseModel):
    """Partial update. Presence is tracked through ``model_fields_set``."""

    date: str | None = None
    garden_id: int | None = None
    trader_name: str | None = None
    price_per_kg: Decimal | None = None
    grade1_kg: Decimal | None = None
    grade2_kg: Decimal | None = None
    third_label: str | None = None
    third_kg: Decimal | None = None
    third_price_per_kg: Decimal | None = None
    independent_scale_full_kg: Decimal | None = None
    independent_scale_empty_kg: Decimal | None = None
    trader_scale_full_kg: Decimal | None = None
    trader_scale_empty_kg: Decimal | None = None

    def provided(self, field: str) -> bool:
        return field in self.model_fields_set


class PhotoResponse(BaseModel):
    id: str
    category: str
    url: str
    created_at: datetime

    @classmethod
    def from_photo(cls, photo: HarvestPhoto) -> "PhotoResponse":
        return cls(id=photo.id, category=photo.category, url=photo.url, created_at=photo.created_at)


class PhotoUploadResponse(BaseModel):
    photos: list[PhotoResponse]


class HarvestResponse(BaseModel):
    id: str
    tenant_id: str
    garden_id: int
    garden_name: str | None = None
    campus_name: str | None = None
    trader_id: str | None = None
    trader_name: str
    date: datetime
    name: str
    status: str
    price_per_kg: Decimal | None = None
    grade1_kg: Decimal | None = None
    grade2_kg: Decimal | None = None
    third_label: str | None = None
    third_kg: Decimal | None = None
    third_price_per_kg: Decimal | None = None
    independent_scale_full_kg: Decimal | None = None
    independent_scale_empty_kg: Decimal | None = None
    trader_scale_full_kg: Decimal | None = None
    trader_scale_empty_kg: Decimal | None = None
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    photos: list[PhotoResponse] = []

    @classmethod
    def from_entry(cls, entry: HarvestEntry, garden_name: str | None = None, campus_name: str | None = None) -> "HarvestResponse":
        data = entry.model_dump(exclude={"photos"})
        return cls(
            **data,
            garden_name=garden_name,
            campus_name=campus_name,
            photos=[PhotoResponse.from_photo(p) for p in entry.photos],
        )


class HarvestListResponse(BaseModel):
    items: list[HarvestResponse]


class SuccessResponse(BaseModel):
    success: bool = True


class TraderNameResponse(BaseModel):
    name: str


class SummaryFilters(BaseModel):
    year: int | None = None
    campus_id: str | None = None
    garden_id: int | None = None
    trader: str | None = None  # Case-insensitive substring of trader_name


class SummaryRow(BaseModel):
    id: str
    harvest_date: datetime
    trader_name: str
    garden_name: str
    campus_name: str
    grade1_kg: Decimal
    grade2_kg: Decimal
    total_kg: Decimal
    sale_price: Decimal
    total_amount: Decimal | None = None
    scale_full_kg: Decimal | None = None
    scale_empty_kg: Decimal | None = None
    scale_diff: Decimal | None = None
    second_ratio: Decimal | None = None
    second_ratio_high: bool = False
    scale_gap: Decimal | None = None
    scale_diff_pct: Decimal | None = None
    scale_gap_high: bool = False
    grade1_total: Decimal
    grade2_total: Decimal
    net_total: Decimal


class SummaryTotals(BaseModel):
    sum_grade1: Decimal
    sum_grade2: Decimal
    sum_total_kg: Decimal
    sum_full: Decimal
    sum_empty: Decimal
    sum_scale_diff: Decimal
    second_ratio_total: Decimal | None = None
    sum_scale_gap: Decimal | None = None
    avg_price: Decimal | None = None
    sum_grade1_total: Decimal
    sum_grade2_total: Decimal
    sum_net_total: Decimal


class SummaryResponse(BaseModel):
    rows: list[SummaryRow]
    totals: SummaryTotals
