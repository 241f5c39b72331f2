"""Audit trail helper shared by the persistence services."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from labor_engine.models import AuditEvent


async def record_audit(
    session: AsyncSession,
    restaurant_id: UUID,
    entity_type: str,
    entity_id: UUID,
    action: str,
    actor_id: UUID | None = None,
    detail: dict[str, Any] | None = None,
) -> AuditEvent:
    """Record an audit event for a state-changing action."""
    event = AuditEvent(
        restaurant_id=restaurant_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        detail=detail or {},
    )
    session.add(event)
    return event
