# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit trail for mutating workflow operations.

Entries are added to the caller's session and become visible with the
caller's commit, so an operation and its audit entry land or roll back
together.
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Appends and reads audit entries.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def log_action(
        self,
        action: str,
        performed_by: str,
        target_type: str,
        target_id: str,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Stage an audit entry in the current transaction.

        Args:
            action: Operation name, e.g. "enrollment.approved".
            performed_by: ID of the acting user or "system".
            target_type: Kind of entity acted on.
            target_id: ID of the entity acted on.
            details: Extra JSON-serializable context.

        Returns:
            The pending AuditLog row.
        """
        entry = AuditLog(
            action=action,
            performed_by=performed_by,
            target_type=target_type,
            target_id=target_id,
            details=details or {},
        )
        self.db.add(entry)
        logger.debug("Audit: %s on %s %s by %s", action, target_type, target_id, performed_by)
        return entry

    async def list_for_target(self, target_id: str) -> list[AuditLog]:
        """Get every entry recorded against a target, oldest first."""
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.target_id == target_id)
            .order_by(AuditLog.created_at, AuditLog.id)
        )
        return list(result.scalars().all())
