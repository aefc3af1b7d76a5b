from sqlmodel import Session, select

from db import engine
from models import Campus, Garden, Tenant, Trader


def seed_database(tenant_key: str = "kral", bind=None):
    """Seed the database with a demo tenant, campus, gardens and traders."""
    with Session(bind or engine) as session:
        # Check if data already exists
        existing = session.exec(select(Tenant).where(Tenant.key == tenant_key)).first()
        if existing:
            print(f"Tenant '{tenant_key}' already exists, skipping seed.")
            return

        tenant = Tenant(key=tenant_key, name="Kral Tarım")
        session.add(tenant)
        session.flush()

        campus = Campus(tenant_id=tenant.id, name="Merkez Kampüs")
        session.add(campus)
        session.flush()

        gardens = [
            Garden(tenant_id=tenant.id, campus_id=campus.id, name="Bahçe 1"),
            Garden(tenant_id=tenant.id, campus_id=campus.id, name="Bahçe 2"),
            Garden(tenant_id=tenant.id, campus_id=campus.id, name="Sera A"),
        ]
        traders = [
            Trader(tenant_id=tenant.id, name="Acme Gıda"),
            Trader(tenant_id=tenant.id, name="Yılmaz Hal"),
        ]

        session.add_all(gardens + traders)
        session.commit()
        print(f"Seeded tenant '{tenant_key}' with {len(gardens)} gardens and {len(traders)} traders.")


if __name__ == "__main__":
    from db import create_db_and_tables

    create_db_and_tables()
    seed_database()
