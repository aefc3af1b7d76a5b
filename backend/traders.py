"""Tenant-scoped trader name registry."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from errors import InvalidArgumentError
from models import Trader

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
LIST_LIMIT = 200


class TraderDirectory:
    def __init__(self, session: Session, log: logging.Logger | None = None):
        self.session = session
        self.log = log or logger

    def _get(self, tenant_id: str, name: str) -> Trader | None:
        stmt = select(Trader).where(Trader.tenant_id == tenant_id, Trader.name == name)
        return self.session.exec(stmt).first()

    def find_or_create(self, tenant_id: str, raw_name: str | None) -> Trader:
        """Resolve a trader by exact trimmed name, creating it if absent.

        Does not commit; the caller owns the transaction.
        """
        name = (raw_name or "").strip()
        if not name:
            raise InvalidArgumentError("Trader name is required", field="trader_name")

        trader = self._get(tenant_id, name)
        if trader is not None:
            return trader

        # A concurrent request may insert the same name; fall back to its row.
        try:
            with self.session.begin_nested():
                trader = Trader(tenant_id=tenant_id, name=name)
                self.session.add(trader)
            self.log.info(f"Created trader '{name}' for tenant {tenant_id}")
            return trader
        except IntegrityError:
            self.log.info(f"Trader '{name}' created concurrently, reusing existing row")
            trader = self._get(tenant_id, name)
            if trader is None:
                raise
            return trader

    def search(self, tenant_id: str, query: str | None) -> list[Trader]:
        """Autocomplete: top matches by case-insensitive substring, alphabetical."""
        q = (query or "").strip()
        if not q:
            return []
        stmt = (
            select(Trader)
            .where(Trader.tenant_id == tenant_id)
            .where(col(Trader.name).icontains(q, autoescape=True))
            .order_by(Trader.name)
            .limit(SEARCH_LIMIT)
        )
        return list(self.session.exec(stmt).all())

    def list_all(self, tenant_id: str) -> list[Trader]:
        stmt = select(Trader).where(Trader.tenant_id == tenant_id).order_by(Trader.name).limit(LIST_LIMIT)
        return list(self.session.exec(stmt).all())
