"""asyncpg trade store for CockroachDB/Postgres.

Each unit of work is one SERIALIZABLE transaction on one pooled connection.
Commands take ``SELECT ... FOR UPDATE`` on the trade row before checking its
status, so concurrent commands on the same trade queue behind each other and
always see the latest committed status. Partial unique indexes back the
one-active-trade and single-accepted-offer rules at the database level.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, List, Optional
from uuid import UUID

import asyncpg
from asyncpg.pool import Pool
from asyncpg.exceptions import PostgresError, SerializationError, DeadlockDetectedError, UniqueViolationError

from database import get_pool
from database.exceptions import StoreUnavailableError
from ..errors import DuplicateActiveTradeError, TradeConflictError
from ..models import (
    OfferStatus,
    ParticipantRole,
    ReportStatus,
    ShipmentSide,
    Trade,
    TradeOffer,
    TradeReport,
    TradeShipping,
    TradeStatus,
)
from ..state import ACTIVE
from . import TradeStore, TradeTransaction

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [status.value for status in ACTIVE]

# Infrastructure failures that surface as StoreUnavailableError
STORE_ERRORS = (PostgresError, asyncpg.InterfaceError, ConnectionError, OSError)


def _trade_from_row(row: Any) -> Trade:
    return Trade(
        id=row['id'],
        item_id=row['item_id'],
        initiator_id=row['initiator_id'],
        item_owner_id=row['item_owner_id'],
        status=TradeStatus(row['status']),
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def _offer_from_row(row: Any) -> TradeOffer:
    return TradeOffer(
        id=row['id'],
        trade_id=row['trade_id'],
        offerer_id=row['offerer_id'],
        offered_item_id=row['offered_item_id'],
        message=row['message'],
        is_counter_offer=row['is_counter_offer'],
        status=OfferStatus(row['status']),
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def _side_from_row(row: Any, prefix: str) -> ShipmentSide:
    return ShipmentSide(
        shipped=row[f'{prefix}_shipped'],
        shipped_at=row[f'{prefix}_shipped_at'],
        tracking_number=row[f'{prefix}_tracking_number'],
        received=row[f'{prefix}_received'],
        received_at=row[f'{prefix}_received_at']
    )


def _shipping_from_row(row: Any) -> TradeShipping:
    return TradeShipping(
        trade_id=row['trade_id'],
        initiator=_side_from_row(row, 'initiator'),
        owner=_side_from_row(row, 'owner'),
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def _report_from_row(row: Any) -> TradeReport:
    return TradeReport(
        id=row['id'],
        trade_id=row['trade_id'],
        reporter_id=row['reporter_id'],
        reported_user_id=row['reported_user_id'],
        reason=row['reason'],
        description=row['description'],
        status=ReportStatus(row['status']),
        reviewed_by=row['reviewed_by'],
        review_notes=row['review_notes'],
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


class PostgresTradeTransaction(TradeTransaction):

    def __init__(self, conn: asyncpg.Connection) -> None:
        self.conn = conn
        # First trade locked in this unit of work, named in conflict errors
        self.trade_id: Optional[UUID] = None

    async def lock_trade(self, trade_id: UUID) -> Optional[Trade]:
        if self.trade_id is None:
            self.trade_id = trade_id
        row = await self.conn.fetchrow(
            'SELECT * FROM trades WHERE id = $1 FOR UPDATE',
            trade_id
        )
        return _trade_from_row(row) if row else None

    async def get_trade(self, trade_id: UUID) -> Optional[Trade]:
        row = await self.conn.fetchrow('SELECT * FROM trades WHERE id = $1', trade_id)
        return _trade_from_row(row) if row else None

    async def find_active_trade(self, initiator_id: str, item_id: UUID) -> Optional[Trade]:
        row = await self.conn.fetchrow(
            '''
            SELECT * FROM trades
            WHERE initiator_id = $1 AND item_id = $2 AND status = ANY($3::TEXT[])
            LIMIT 1
            ''',
            initiator_id,
            item_id,
            ACTIVE_STATUSES
        )
        return _trade_from_row(row) if row else None

    async def insert_trade(
        self,
        item_id: UUID,
        initiator_id: str,
        item_owner_id: str,
        now: datetime
    ) -> Trade:
        try:
            # Savepoint so a lost race on the unique index leaves the transaction usable
            async with self.conn.transaction():
                row = await self.conn.fetchrow(
                    '''
                    INSERT INTO trades (
                        item_id,
                        initiator_id,
                        item_owner_id,
                        status,
                        created_at,
                        updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $5)
                    RETURNING *
                    ''',
                    item_id,
                    initiator_id,
                    item_owner_id,
                    TradeStatus.PENDING.value,
                    now
                )
        except UniqueViolationError:
            existing = await self.find_active_trade(initiator_id, item_id)
            if not existing:
                raise
            raise DuplicateActiveTradeError(existing.id)
        return _trade_from_row(row)

    async def update_trade_status(
        self,
        trade_id: UUID,
        expected: TradeStatus,
        new: TradeStatus,
        now: datetime
    ) -> Optional[Trade]:
        row = await self.conn.fetchrow(
            '''
            UPDATE trades
            SET status = $3, updated_at = $4
            WHERE id = $1 AND status = $2
            RETURNING *
            ''',
            trade_id,
            expected.value,
            new.value,
            now
        )
        return _trade_from_row(row) if row else None

    async def list_trades(
        self,
        user_id: str,
        role: Optional[ParticipantRole] = None,
        status: Optional[TradeStatus] = None
    ) -> List[Trade]:
        if role is ParticipantRole.INITIATOR:
            query = 'SELECT * FROM trades WHERE initiator_id = $1'
        elif role is ParticipantRole.OWNER:
            query = 'SELECT * FROM trades WHERE item_owner_id = $1'
        else:
            query = 'SELECT * FROM trades WHERE (initiator_id = $1 OR item_owner_id = $1)'
        params: List[Any] = [user_id]

        if status:
            query += f" AND status = ${len(params) + 1}"
            params.append(status.value)

        query += ' ORDER BY updated_at DESC'

        rows = await self.conn.fetch(query, *params)
        return [_trade_from_row(row) for row in rows]

    async def insert_shipping(self, trade_id: UUID, now: datetime) -> TradeShipping:
        row = await self.conn.fetchrow(
            '''
            INSERT INTO trade_shipping (trade_id, created_at, updated_at)
            VALUES ($1, $2, $2)
            RETURNING *
            ''',
            trade_id,
            now
        )
        return _shipping_from_row(row)

    async def lock_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        row = await self.conn.fetchrow(
            'SELECT * FROM trade_shipping WHERE trade_id = $1 FOR UPDATE',
            trade_id
        )
        return _shipping_from_row(row) if row else None

    async def get_shipping(self, trade_id: UUID) -> Optional[TradeShipping]:
        row = await self.conn.fetchrow('SELECT * FROM trade_shipping WHERE trade_id = $1', trade_id)
        return _shipping_from_row(row) if row else None

    async def save_shipping(self, shipping: TradeShipping) -> TradeShipping:
        i, o = shipping.initiator, shipping.owner
        row = await self.conn.fetchrow(
            '''
            UPDATE trade_shipping
            SET
                initiator_shipped = $2,
                initiator_shipped_at = $3,
                initiator_tracking_number = $4,
                initiator_received = $5,
                initiator_received_at = $6,
                owner_shipped = $7,
                owner_shipped_at = $8,
                owner_tracking_number = $9,
                owner_received = $10,
                owner_received_at = $11,
                updated_at = $12
            WHERE trade_id = $1
            RETURNING *
            ''',
            shipping.trade_id,
            i.shipped, i.shipped_at, i.tracking_number, i.received, i.received_at,
            o.shipped, o.shipped_at, o.tracking_number, o.received, o.received_at,
            shipping.updated_at
        )
        return _shipping_from_row(row)

    async def count_offers(self, trade_id: UUID) -> int:
        return await self.conn.fetchval(
            'SELECT count(*) FROM trade_offers WHERE trade_id = $1',
            trade_id
        )

    async def list_offers(self, trade_id: UUID) -> List[TradeOffer]:
        rows = await self.conn.fetch(
            'SELECT * FROM trade_offers WHERE trade_id = $1 ORDER BY created_at, id',
            trade_id
        )
        return [_offer_from_row(row) for row in rows]

    async def get_offer(self, offer_id: UUID) -> Optional[TradeOffer]:
        row = await self.conn.fetchrow('SELECT * FROM trade_offers WHERE id = $1', offer_id)
        return _offer_from_row(row) if row else None

    async def insert_offer(
        self,
        trade_id: UUID,
        offerer_id: str,
        offered_item_id: Optional[UUID],
        message: Optional[str],
        is_counter_offer: bool,
        now: datetime
    ) -> TradeOffer:
        row = await self.conn.fetchrow(
            '''
            INSERT INTO trade_offers (
                trade_id,
                offerer_id,
                offered_item_id,
                message,
                is_counter_offer,
                status,
                created_at,
                updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            RETURNING *
            ''',
            trade_id,
            offerer_id,
            offered_item_id,
            message,
            is_counter_offer,
            OfferStatus.PENDING.value,
            now
        )
        return _offer_from_row(row)

    async def update_offer_status(
        self,
        offer_id: UUID,
        expected: OfferStatus,
        new: OfferStatus,
        now: datetime
    ) -> Optional[TradeOffer]:
        row = await self.conn.fetchrow(
            '''
            UPDATE trade_offers
            SET status = $3, updated_at = $4
            WHERE id = $1 AND status = $2
            RETURNING *
            ''',
            offer_id,
            expected.value,
            new.value,
            now
        )
        return _offer_from_row(row) if row else None

    async def reject_pending_offers(
        self,
        trade_id: UUID,
        except_offer_id: UUID,
        now: datetime
    ) -> int:
        rows = await self.conn.fetch(
            '''
            UPDATE trade_offers
            SET status = $3, updated_at = $4
            WHERE trade_id = $1 AND id <> $2 AND status = $5
            RETURNING id
            ''',
            trade_id,
            except_offer_id,
            OfferStatus.REJECTED.value,
            now,
            OfferStatus.PENDING.value
        )
        return len(rows)

    async def insert_report(
        self,
        trade_id: UUID,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        description: Optional[str],
        now: datetime
    ) -> TradeReport:
        row = await self.conn.fetchrow(
            '''
            INSERT INTO trade_reports (
                trade_id,
                reporter_id,
                reported_user_id,
                reason,
                description,
                status,
                created_at,
                updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            RETURNING *
            ''',
            trade_id,
            reporter_id,
            reported_user_id,
            reason,
            description,
            ReportStatus.OPEN.value,
            now
        )
        return _report_from_row(row)

    async def list_reports(self, trade_id: UUID) -> List[TradeReport]:
        rows = await self.conn.fetch(
            'SELECT * FROM trade_reports WHERE trade_id = $1 ORDER BY created_at, id',
            trade_id
        )
        return [_report_from_row(row) for row in rows]

    async def get_report(self, report_id: UUID) -> Optional[TradeReport]:
        row = await self.conn.fetchrow('SELECT * FROM trade_reports WHERE id = $1', report_id)
        return _report_from_row(row) if row else None

    async def close_report(
        self,
        report_id: UUID,
        reviewed_by: str,
        review_notes: Optional[str],
        now: datetime
    ) -> Optional[TradeReport]:
        row = await self.conn.fetchrow(
            '''
            UPDATE trade_reports
            SET status = $2, reviewed_by = $3, review_notes = $4, updated_at = $5
            WHERE id = $1 AND status = $6
            RETURNING *
            ''',
            report_id,
            ReportStatus.CLOSED.value,
            reviewed_by,
            review_notes,
            now,
            ReportStatus.OPEN.value
        )
        return _report_from_row(row) if row else None


class PostgresTradeStore(TradeStore):
    """Trade store backed by the shared asyncpg pool."""

    def __init__(self, pool: Optional[Pool] = None) -> None:
        """Initialize the store.

        Args:
            pool: Optional database connection pool. If not provided, will get from database module.
        """
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTradeTransaction]:
        """Open a SERIALIZABLE unit of work.

        A unit of work aborted by a concurrent writer raises TradeConflictError;
        commands wrapped in retry_on_conflict then run again from the top.
        """
        tx: Optional[PostgresTradeTransaction] = None
        try:
            await self.ensure_pool()
            async with self.pool.acquire() as conn:
                async with conn.transaction(isolation='serializable'):
                    tx = PostgresTradeTransaction(conn)
                    yield tx
        except (SerializationError, DeadlockDetectedError, UniqueViolationError) as e:
            trade_id = tx.trade_id if tx else None
            logger.warning(f"Trade transaction on {trade_id} aborted by a concurrent writer: {e}")
            subject = f"Trade {trade_id}" if trade_id else "Trade"
            raise TradeConflictError(
                trade_id, None, 'update',
                f"{subject} was modified concurrently, reload it and try again"
            )
        except STORE_ERRORS as e:
            logger.error(f"Database error in trade transaction: {e}")
            raise StoreUnavailableError(f"Trade store unavailable: {e}")

    async def close(self) -> None:
        # The pool is shared and closed by database.close()
        self.pool = None
