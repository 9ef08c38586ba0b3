"""Authoritative lowest-price store and its conflict policy.

The policy is evaluated inside a single conditional upsert so that
concurrent reports for the same product can never move the stored price up
or regress its trust level at an unchanged price:

- no record            -> insert
- lower price          -> replace price and trust
- same price, better trust -> replace trust
- anything else        -> no change
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from community_low.db.models import LowestPrice, TrustLevel
from community_low.errors import TransportFailure, UnsupportedDatabaseError
from community_low.logging_config import get_logger

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass(frozen=True)
class LowestPriceRecord:
    """Read-only view of a ``lowest_prices`` row."""

    prod_id: str
    price: Decimal
    trust_level: TrustLevel
    updated_at: datetime


def should_replace(
    current: Optional[LowestPriceRecord],
    price: Decimal,
    trust_level: TrustLevel,
) -> bool:
    """Pure form of the conflict policy (the upsert's WHERE clause mirrors it)."""
    if current is None:
        return True
    if price < current.price:
        return True
    return price == current.price and trust_level.is_better_than(current.trust_level)


class PriceStore:
    """Durable product -> (lowest price, trust, updated_at) mapping."""

    def ensure_supported(self, session: AsyncSession) -> None:
        """
        Check that the session's database can run the conditional upsert.

        Raises:
            UnsupportedDatabaseError: for dialects without ON CONFLICT ... WHERE
        """
        self._insert_for(session)

    def _insert_for(self, session: AsyncSession):
        dialect = session.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise UnsupportedDatabaseError(
                f"No atomic conditional upsert for dialect '{dialect}'"
            )
        return insert

    async def try_update(
        self,
        session: AsyncSession,
        prod_id: str,
        price: Decimal,
        trust_level: TrustLevel,
        now: datetime,
    ) -> bool:
        """
        Apply a (price, trust) pair under the conflict policy and commit.

        Args:
            session: Database session
            prod_id: Product identifier
            price: Normalised price
            trust_level: Classified trust of the report
            now: Transition timestamp, stored as ``updated_at`` when accepted

        Returns:
            True if the record was created or changed, False if rejected
        """
        table = LowestPrice.__table__
        insert = self._insert_for(session)

        stmt = insert(table).values(
            prod_id=prod_id,
            min_price=price,
            trust_level=int(trust_level),
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.prod_id],
            set_={
                "min_price": stmt.excluded.min_price,
                "trust_level": stmt.excluded.trust_level,
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(
                stmt.excluded.min_price < table.c.min_price,
                and_(
                    stmt.excluded.min_price == table.c.min_price,
                    stmt.excluded.trust_level < table.c.trust_level,
                ),
            ),
        ).returning(table.c.prod_id)

        result = await session.execute(stmt)
        accepted = result.scalar_one_or_none() is not None
        await session.commit()

        log = get_logger(__name__, prod_id=prod_id, trust_level=trust_level.name)
        if accepted:
            log.info(f"Lowest price is now {price}")
        else:
            log.debug(f"Rejected {price}")
        return accepted

    async def get(self, session: AsyncSession, prod_id: str) -> Optional[LowestPriceRecord]:
        """
        Current record for a product, or None if it was never reported.

        Raises:
            TransportFailure: if the database cannot be read
        """
        try:
            result = await session.execute(
                select(
                    LowestPrice.prod_id,
                    LowestPrice.min_price,
                    LowestPrice.trust_level,
                    LowestPrice.updated_at,
                ).where(LowestPrice.prod_id == prod_id)
            )
        except (SQLAlchemyError, OSError) as e:
            raise TransportFailure(f"lowest-price read failed for {prod_id}") from e
        row = result.first()
        return self._to_record(row) if row else None

    async def snapshot(self, session: AsyncSession) -> Dict[str, LowestPriceRecord]:
        """Every product with a current record."""
        try:
            result = await session.execute(
                select(
                    LowestPrice.prod_id,
                    LowestPrice.min_price,
                    LowestPrice.trust_level,
                    LowestPrice.updated_at,
                ).order_by(LowestPrice.prod_id)
            )
        except (SQLAlchemyError, OSError) as e:
            raise TransportFailure("snapshot read failed") from e
        return {row.prod_id: self._to_record(row) for row in result}

    @staticmethod
    def _to_record(row) -> LowestPriceRecord:
        return LowestPriceRecord(
            prod_id=row.prod_id,
            price=Decimal(row.min_price),
            trust_level=TrustLevel(row.trust_level),
            updated_at=row.updated_at,
        )


# Global store instance
price_store = PriceStore()
