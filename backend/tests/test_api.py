from decimal import Decimal

import pytest

from conftest import PNG_BYTES
from models import PHOTO_GENERAL, PHOTO_TRADER_SLIP


@pytest.fixture
def draft(client, tenant, garden):
    """A complete draft created over HTTP, still missing its slip photo."""
    response = client.post(
        "/harvest",
        json={
            "date": "2024-06-01",
            "garden_id": garden.id,
            "trader_name": "Acme",
            "price_per_kg": "10",
            "grade1_kg": "100",
            "grade2_kg": "20",
        },
    )
    assert response.status_code == 200
    return response.json()


def upload(client, harvest_id, category=PHOTO_TRADER_SLIP, name="slip.png", content=PNG_BYTES, content_type="image/png"):
    return client.post(
        f"/harvest/{harvest_id}/photos",
        params={"category": category},
        files=[("files", (name, content, content_type))],
    )


def test_create_harvest(draft, garden):
    """Test that a new entry starts as a numbered draft."""
    assert draft["status"] == "draft"
    assert draft["name"] == "01.06.2024 - 1. Araba"
    assert draft["garden_name"] == garden.name
    assert draft["trader_name"] == "Acme"
    assert draft["submitted_at"] is None
    assert draft["photos"] == []
    assert Decimal(draft["price_per_kg"]) == Decimal("10")


def test_create_defaults_price_to_zero(client, tenant, garden):
    response = client.post("/harvest", json={"date": "2024-06-01", "garden_id": garden.id, "trader_name": "Acme"})
    assert response.status_code == 200
    assert Decimal(response.json()["price_per_kg"]) == Decimal("0")


def test_create_invalid_date(client, tenant, garden):
    """Test that malformed dates are rejected as bad input."""
    response = client.post("/harvest", json={"date": "2024-13-45", "garden_id": garden.id, "trader_name": "Acme"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_ARGUMENT"


def test_create_negative_quantity(client, tenant, garden):
    response = client.post(
        "/harvest",
        json={"date": "2024-06-01", "garden_id": garden.id, "trader_name": "Acme", "grade1_kg": "-1"},
    )
    assert response.status_code == 400


def test_create_garden_of_other_tenant(client, tenant, make_garden, other_tenant):
    """Test that gardens are only visible inside their own tenant."""
    foreign = make_garden(owner=other_tenant)
    response = client.post("/harvest", json={"date": "2024-06-01", "garden_id": foreign.id, "trader_name": "Acme"})
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_unknown_tenant(client, tenant, garden):
    response = client.get("/harvest", headers={"x-tenant": "yok"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Unknown tenant"


def test_tenant_header_selects_tenant(client, tenant, other_tenant, draft):
    own = client.get("/harvest")
    foreign = client.get("/harvest", headers={"x-tenant": "RAKIP"})
    assert [e["id"] for e in own.json()["items"]] == [draft["id"]]
    assert foreign.json()["items"] == []
    assert client.get(f"/harvest/{draft['id']}", headers={"x-tenant": "rakip"}).status_code == 404


def test_submit_without_slip_photo(client, draft):
    """Test that the submission gate reports every failing field."""
    response = client.post(f"/harvest/{draft['id']}/submit")
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_FAILED"
    assert data["fields"] == ["trader_receipt_photo"]
    assert data["violations"][0]["field"] == "trader_receipt_photo"
    assert data["violations"][0]["message"]


def test_submit_reports_all_missing_fields(client, tenant, garden):
    created = client.post("/harvest", json={"date": "2024-06-01", "garden_id": garden.id, "trader_name": "Acme"}).json()
    response = client.post(f"/harvest/{created['id']}/submit")
    assert response.status_code == 422
    assert set(response.json()["fields"]) == {"sale_price", "grade1_kg", "grade2_kg", "trader_receipt_photo"}


def test_upload_then_submit(client, draft, storage):
    """Test the full draft to submitted flow."""
    uploaded = upload(client, draft["id"])
    assert uploaded.status_code == 200
    photos = uploaded.json()["photos"]
    assert len(photos) == 1
    assert photos[0]["category"] == PHOTO_TRADER_SLIP
    assert photos[0]["url"].startswith(f"/uploads/harvests/{draft['id']}/")
    assert storage.saved[0][2] == PNG_BYTES

    response = client.post(f"/harvest/{draft['id']}/submit")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "submitted"
    assert data["submitted_at"] is not None
    assert len(data["photos"]) == 1


def test_general_photo_does_not_satisfy_gate(client, draft):
    assert upload(client, draft["id"], category=PHOTO_GENERAL).status_code == 200
    response = client.post(f"/harvest/{draft['id']}/submit")
    assert response.status_code == 422
    assert response.json()["fields"] == ["trader_receipt_photo"]


def test_upload_rejects_non_images(client, draft):
    response = upload(client, draft["id"], name="notes.txt", content=b"hello", content_type="text/plain")
    assert response.status_code == 400


def test_upload_rejects_unknown_category(client, draft):
    assert upload(client, draft["id"], category="SELFIE").status_code == 400


def test_delete_photo(client, draft):
    photo = upload(client, draft["id"]).json()["photos"][0]
    response = client.delete(f"/harvest/{draft['id']}/photos/{photo['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert client.get(f"/harvest/{draft['id']}").json()["photos"] == []


def test_submitted_entry_is_frozen(client, draft):
    """Test that submitted entries refuse every mutation."""
    upload(client, draft["id"])
    client.post(f"/harvest/{draft['id']}/submit")

    assert client.put(f"/harvest/{draft['id']}", json={"grade1_kg": "5"}).status_code == 409
    assert client.delete(f"/harvest/{draft['id']}").status_code == 409
    assert client.post(f"/harvest/{draft['id']}/submit").status_code == 409
    assert upload(client, draft["id"]).status_code == 409
    assert client.put(f"/harvest/{draft['id']}", json={"grade1_kg": "5"}).json()["code"] == "INVALID_STATE"


def test_update_partial(client, draft):
    """Test that omitted fields keep their values and explicit nulls clear them."""
    response = client.put(f"/harvest/{draft['id']}", json={"grade2_kg": "25", "price_per_kg": None})
    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["grade2_kg"]) == Decimal("25")
    assert Decimal(data["grade1_kg"]) == Decimal("100")
    assert data["price_per_kg"] is None
    assert data["name"] == draft["name"]


def test_update_date_renames(client, draft, tenant, garden):
    client.post("/harvest", json={"date": "2024-06-02", "garden_id": garden.id, "trader_name": "Acme"})
    response = client.put(f"/harvest/{draft['id']}", json={"date": "2024-06-02"})
    assert response.status_code == 200
    assert response.json()["name"] == "02.06.2024 - 2. Araba"


def test_delete_draft(client, draft):
    response = client.delete(f"/harvest/{draft['id']}")
    assert response.status_code == 200
    assert client.get(f"/harvest/{draft['id']}").status_code == 404


def test_list_filters(client, draft, tenant, garden):
    """Test date and status filters on the recent entries list."""
    client.post("/harvest", json={"date": "2024-06-05", "garden_id": garden.id, "trader_name": "Acme"})

    all_items = client.get("/harvest").json()["items"]
    assert [e["date"][:10] for e in all_items] == ["2024-06-05", "2024-06-01"]

    ranged = client.get("/harvest", params={"date_from": "2024-06-01", "date_to": "2024-06-01"}).json()["items"]
    assert [e["id"] for e in ranged] == [draft["id"]]

    assert client.get("/harvest", params={"status": "submitted"}).json()["items"] == []
    assert client.get("/harvest", params={"status": "archived"}).status_code == 400


def test_summary_endpoint(client, tenant, make_submitted, make_harvest):
    """Test that the summary only covers submitted entries and serializes decimals."""
    entry = make_submitted(date="2024-06-01", grade1_kg=100, grade2_kg=15)
    make_harvest(date="2024-06-01")

    response = client.get("/harvest/summary", params={"year": 2024})
    assert response.status_code == 200
    data = response.json()
    assert [r["id"] for r in data["rows"]] == [entry.id]
    row = data["rows"][0]
    assert isinstance(row["net_total"], str)
    assert Decimal(row["net_total"]) == Decimal("1075")
    assert Decimal(data["totals"]["sum_total_kg"]) == Decimal("115")
    assert data["totals"]["sum_scale_gap"] is not None

    other_year = client.get("/harvest/summary", params={"year": 2023}).json()
    assert other_year["rows"] == []


def test_trader_autocomplete(client, make_harvest):
    make_harvest(trader_name="Yılmaz Hal")
    make_harvest(trader_name="Hal Market")
    make_harvest(trader_name="Beta")

    response = client.get("/harvest/traders", params={"q": "hal"})
    assert response.status_code == 200
    assert response.json() == [{"name": "Hal Market"}, {"name": "Yılmaz Hal"}]
    assert client.get("/harvest/traders").json() == []

    every = client.get("/harvest/traders", params={"list": "all"}).json()
    assert [t["name"] for t in every] == ["Beta", "Hal Market", "Yılmaz Hal"]


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"
