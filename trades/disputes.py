"""Dispute registrar.

Persists violation reports. Filing a report is a ledger transition (the trade
moves to disputed), so the registrar hands it to TradeLedger.report; what it owns
is the report rows and their moderation.
"""
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from .errors import ForbiddenError, ReportAlreadyClosedError, ReportNotFoundError, TradeNotFoundError
from .models import ParticipantRole, ReportStatus, Trade, TradeReport
from .store import TradeStore, TradeTransaction, retry_on_conflict

if TYPE_CHECKING:
    from .ledger import TradeLedger

logger = logging.getLogger(__name__)

# Roles allowed to read and close reports
PRIVILEGED_ROLES = frozenset({'moderator', 'admin'})


async def record_report(
    tx: TradeTransaction,
    trade: Trade,
    reporter_role: ParticipantRole,
    reason: str,
    description: Optional[str],
    now: datetime
) -> TradeReport:
    """Insert a report by one participant against the other."""
    return await tx.insert_report(
        trade.id,
        trade.participant_id(reporter_role),
        trade.participant_id(reporter_role.other),
        reason,
        description,
        now
    )


class DisputeRegistrar:
    """Files, lists and closes trade reports."""

    def __init__(self, store: TradeStore, ledger: 'TradeLedger') -> None:
        self.store = store
        self.ledger = ledger

    async def file(
        self,
        trade_id: UUID,
        reporter_id: str,
        reason: str,
        description: Optional[str] = None
    ) -> Trade:
        return await self.ledger.report(trade_id, reporter_id, reason, description)

    @retry_on_conflict
    async def list_reports(self, trade_id: UUID, requester_role: str) -> List[TradeReport]:
        """List every report filed on a trade.

        Args:
            trade_id: Trade to list reports for
            requester_role: Account role of the caller

        Returns:
            Reports in filing order

        Raises:
            ForbiddenError: If the caller is not a moderator or admin
            TradeNotFoundError: If the trade does not exist
        """
        if requester_role not in PRIVILEGED_ROLES:
            logger.warning(f"Role {requester_role} denied listing reports for trade {trade_id}")
            raise ForbiddenError("Only moderators and admins can view trade reports")

        async with self.store.transaction() as tx:
            if not await tx.get_trade(trade_id):
                raise TradeNotFoundError(trade_id)
            return await tx.list_reports(trade_id)

    @retry_on_conflict
    async def close_report(
        self,
        report_id: UUID,
        reviewer_id: str,
        reviewer_role: str,
        notes: Optional[str] = None
    ) -> TradeReport:
        """Close an open report after review.

        The disputed trade stays disputed.

        Raises:
            ForbiddenError: If the reviewer is not a moderator or admin
            ReportNotFoundError: If the report does not exist
            ReportAlreadyClosedError: If the report is not open
        """
        if reviewer_role not in PRIVILEGED_ROLES:
            logger.warning(f"User {reviewer_id} ({reviewer_role}) denied closing report {report_id}")
            raise ForbiddenError("Only moderators and admins can close trade reports")

        now = datetime.now(timezone.utc)
        async with self.store.transaction() as tx:
            report = await tx.get_report(report_id)
            if not report:
                raise ReportNotFoundError(report_id)
            if report.status is not ReportStatus.OPEN:
                raise ReportAlreadyClosedError(report_id)
            closed = await tx.close_report(report_id, reviewer_id, notes, now)
            if not closed:
                raise ReportAlreadyClosedError(report_id)

        logger.info(f"Report {report_id} on trade {closed.trade_id} closed by {reviewer_id}")
        return closed
