"""Audit service for logging booking changes."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from pickleplus.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncSession,
    action_type: str,  # 'ENROLL', 'WAITLIST', 'UNENROLL', 'PROMOTE', 'CANCEL_CLASS', 'CREATE'
    entity_type: str,  # 'class', 'facility'
    entity_id: Optional[int],
    entity_name: str,
    description: str,
    user_type: str = "player",
    user_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit entry to the caller's transaction.

    Args:
        db: Database session
        action_type: Type of action (ENROLL, UNENROLL, etc.)
        entity_type: Type of entity (class, facility)
        entity_id: ID of the entity
        entity_name: Name of the entity for quick search
        description: Human-readable description
        user_type: Type of user (player, admin, system)
        user_id: ID of the user (if applicable)
        changes: Dictionary with before/after changes

    Returns:
        The pending AuditLog instance
    """
    audit_log = AuditLog(
        timestamp=datetime.now(timezone.utc),
        user_type=user_type,
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        description=description,
        changes_json=changes,
    )
    # Committed together with the booking change by the caller
    db.add(audit_log)

    logger.info(f"Audit log added: {action_type} {entity_type} '{entity_name}'")
    return audit_log


async def get_audit_logs(
    db: AsyncSession,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action_type: Optional[str] = None,
    user_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    """
    Get audit logs with filters, newest first.

    Returns:
        Tuple of (list of audit logs, total count)
    """
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    filters = []

    if date_from:
        filters.append(AuditLog.timestamp >= date_from)

    if date_to:
        filters.append(AuditLog.timestamp <= date_to)

    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        filters.append(AuditLog.entity_id == entity_id)

    if action_type:
        filters.append(AuditLog.action_type == action_type)

    if user_id is not None:
        filters.append(AuditLog.user_id == user_id)

    if search:
        search_pattern = f"%{search}%"
        filters.append(
            or_(
                AuditLog.entity_name.ilike(search_pattern),
                AuditLog.description.ilike(search_pattern),
            )
        )

    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    logs = result.scalars().all()

    count_result = await db.execute(count_query)
    total_count = count_result.scalar() or 0

    return list(logs), total_count
