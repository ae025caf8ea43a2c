"""Report moderation API endpoints."""

from typing import Optional

from fastapi import APIRouter, Request, Security
from pydantic import BaseModel, Field

from auth import Identity, get_current_user
from trades import TradeReport
from ..errors import http_error, parse_id
from ..trades import get_manager

# Create router
router = APIRouter(
    prefix="/reports",
    tags=["Reports"]
)

class CloseReportRequest(BaseModel):
    """Request model for closing a report."""
    notes: Optional[str] = Field(None, max_length=1000)

@router.post("/{report_id}/close", response_model=TradeReport)
async def close_report(
    report_id: str,
    request: Request,
    body: Optional[CloseReportRequest] = None,
    user: Identity = Security(get_current_user)
):
    """Close an open report after review (moderators and admins)."""
    report_uuid = parse_id(report_id, "report ID")
    try:
        return await get_manager(request).disputes.close_report(
            report_uuid,
            user.user_id,
            user.role,
            notes=body.notes if body else None
        )
    except Exception as e:
        raise http_error(e)
