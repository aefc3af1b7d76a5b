"""
Shared pytest fixtures: in-memory SQLite, no on-disk database touched.
"""
import os

# Must be set before db.py builds the module-level engine.
os.environ.setdefault("DATABASE_PATH", ":memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from app import app, get_photo_storage
from db import configure_sqlite, create_db_and_tables, get_session
from harvest import HarvestLifecycle, PhotoUpload
from models import PHOTO_TRADER_SLIP, Campus, Garden, Tenant
from schemas import HarvestCreate

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakePhotoStorage:
    """Keeps uploads in memory and hands out predictable URLs."""

    def __init__(self, fail_on=None):
        self.saved = []
        self.deleted = []
        self.fail_on = fail_on  # 1-based save call that raises

    def save(self, harvest_id, filename, content):
        if self.fail_on == len(self.saved) + 1:
            raise OSError("disk full")
        self.saved.append((harvest_id, filename, content))
        return f"/uploads/harvests/{harvest_id}/{len(self.saved)}.png"

    def delete(self, url):
        self.deleted.append(url)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    configure_sqlite(engine)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage():
    return FakePhotoStorage()


@pytest.fixture
def lifecycle(session, storage):
    return HarvestLifecycle(session, storage=storage)


# Tenants and gardens

@pytest.fixture
def make_tenant(session):
    def _f(key="kral", **kw):
        t = Tenant(key=key, name=kw.pop("name", key.title()), **kw)
        session.add(t)
        session.commit()
        session.refresh(t)
        return t
    return _f


@pytest.fixture
def tenant(make_tenant):
    return make_tenant("kral")


@pytest.fixture
def other_tenant(make_tenant):
    return make_tenant("rakip")


@pytest.fixture
def make_garden(session, tenant):
    _n = [0]
    _campuses = {}

    def _f(owner=None, campus=None, name=None):
        owner = owner or tenant
        _n[0] += 1
        if campus is None:
            campus = _campuses.get(owner.id)
            if campus is None:
                campus = Campus(tenant_id=owner.id, name=f"Kampüs {owner.key}")
                session.add(campus)
                session.commit()
                session.refresh(campus)
                _campuses[owner.id] = campus
        g = Garden(tenant_id=owner.id, campus_id=campus.id, name=name or f"Bahçe {_n[0]}")
        session.add(g)
        session.commit()
        session.refresh(g)
        return g
    return _f


@pytest.fixture
def garden(make_garden):
    return make_garden()


# Harvest entries

@pytest.fixture
def make_harvest(lifecycle, tenant, garden):
    def _f(date="2024-06-01", owner=None, **kw):
        kw.setdefault("garden_id", garden.id)
        kw.setdefault("trader_name", "Acme")
        return lifecycle.create((owner or tenant).id, HarvestCreate(date=date, **kw))
    return _f


@pytest.fixture
def attach_photo(lifecycle, tenant):
    def _f(entry, category=PHOTO_TRADER_SLIP, owner=None):
        upload = PhotoUpload(filename="slip.png", content_type="image/png", content=PNG_BYTES)
        return lifecycle.attach_photos((owner or tenant).id, entry.id, category, [upload])[0]
    return _f


@pytest.fixture
def make_submitted(make_harvest, attach_photo, lifecycle, tenant):
    """A complete entry that passes the submission gate, already submitted."""
    def _f(date="2024-06-01", **kw):
        kw.setdefault("price_per_kg", 10)
        kw.setdefault("grade1_kg", 100)
        kw.setdefault("grade2_kg", 20)
        entry = make_harvest(date=date, **kw)
        attach_photo(entry)
        return lifecycle.submit(tenant.id, entry.id)
    return _f


# HTTP client

@pytest.fixture
def client(session, storage):
    """Create a test client with dependency overrides."""

    def get_test_session():
        yield session

    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_photo_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
