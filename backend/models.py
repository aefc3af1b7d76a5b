from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from sqlmodel import Field, Relationship, SQLModel, UniqueConstraint

STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"

PHOTO_TRADER_SLIP = "TRADER_SLIP"
PHOTO_GENERAL = "GENERAL"
PHOTO_CATEGORIES = (PHOTO_GENERAL, PHOTO_TRADER_SLIP)


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


class Tenant(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    key: str = Field(index=True, unique=True)  # lower(trim(key))
    name: str
    status: str = Field(default="active")


class Campus(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    tenant_id: str = Field(foreign_key="tenant.id", index=True)
    name: str


class Garden(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    tenant_id: str = Field(foreign_key="tenant.id", index=True)
    campus_id: str = Field(foreign_key="campus.id", index=True)
    name: str
    status: str = Field(default="ACTIVE")


class Trader(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("tenant_id", "name", name="uniq_trader_tenant_name"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    tenant_id: str = Field(foreign_key="tenant.id", index=True)
    name: str = Field(index=True)  # Trimmed, case preserved
    created_at: datetime = Field(default_factory=utcnow)


class HarvestDaySequence(SQLModel, table=True):
    """Lock row for the per-(tenant, day) name space."""

    tenant_id: str = Field(foreign_key="tenant.id", primary_key=True)
    day: date = Field(primary_key=True)
    generation: int = Field(default=0)
    updated_at: datetime = Field(default_factory=utcnow)


class HarvestEntry(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    tenant_id: str = Field(foreign_key="tenant.id", index=True)
    garden_id: int = Field(foreign_key="garden.id", index=True)
    trader_id: str | None = Field(default=None, foreign_key="trader.id")
    trader_name: str = Field(default="")  # Cached at resolution time
    date: datetime = Field(index=True)  # Calendar day at 12:00 UTC
    name: str  # "DD.MM.YYYY - N. Araba"
    status: str = Field(default=STATUS_DRAFT, index=True)

    price_per_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=4)
    grade1_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    grade2_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    third_label: str | None = Field(default=None)
    third_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    third_price_per_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=4)

    independent_scale_full_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    independent_scale_empty_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    trader_scale_full_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)
    trader_scale_empty_kg: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    submitted_at: datetime | None = Field(default=None)

    photos: list["HarvestPhoto"] = Relationship(
        back_populates="harvest",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "HarvestPhoto.created_at"},
    )


class HarvestPhoto(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    harvest_id: str = Field(foreign_key="harvestentry.id", index=True)
    category: str  # TRADER_SLIP | GENERAL
    url: str
    created_at: datetime = Field(default_factory=utcnow)

    harvest: HarvestEntry | None = Relationship(back_populates="photos")
