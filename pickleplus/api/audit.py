"""Audit log API endpoints."""
from datetime import datetime, time, timedelta
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from pickleplus.api.dependencies import DbSession
from pickleplus.services.audit_service import get_audit_logs

router = APIRouter(prefix="/audit", tags=["audit"])


# === PYDANTIC MODELS ===

class AuditLogResponse(BaseModel):
    """Response model for audit log."""
    id: int
    timestamp: datetime
    user_type: str
    user_id: Optional[int] = None
    action_type: str
    entity_type: str
    entity_id: Optional[int] = None
    entity_name: Optional[str] = None
    description: str
    changes_json: Optional[dict] = None

    class Config:
        from_attributes = True


class AuditLogsListResponse(BaseModel):
    """Response model for audit logs list with pagination."""
    logs: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


def range_end(date_to: datetime) -> datetime:
    """A bare date (midnight) covers that whole day; an explicit time is the bound."""
    if date_to.time() == time.min:
        return date_to + timedelta(days=1)
    return date_to


# === ENDPOINTS ===

@router.get("/logs", response_model=AuditLogsListResponse)
async def list_audit_logs(
    db: DbSession,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by entity name or description"),
    action_type: Optional[str] = Query(None, description="Filter by action type"),
    entity_type: Optional[str] = Query(None, description="Filter by entity type"),
    entity_id: Optional[int] = Query(None, description="Filter by entity ID"),
    user_id: Optional[int] = Query(None, description="Filter by player ID"),
    date_from: Optional[datetime] = Query(None, description="Filter from date"),
    date_to: Optional[datetime] = Query(None, description="Filter to date"),
):
    """Get booking history with filters and pagination."""
    date_to_end = range_end(date_to) if date_to else None

    logs, total = await get_audit_logs(
        db,
        date_from=date_from,
        date_to=date_to_end,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        user_id=user_id,
        search=search,
        limit=page_size,
        offset=(page - 1) * page_size,
    )

    total_pages = (total + page_size - 1) // page_size

    return AuditLogsListResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages
    )
