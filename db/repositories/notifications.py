"""Notification repository — idempotent inbox inserts and the reminder audit log."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from db.models import Notification, SchedulingReminderLog

logger = logging.getLogger(__name__)


async def insert_notifications(session: AsyncSession, rows: list[dict]) -> int:
    """Insert notifications, skipping any whose dedupe_key already exists.

    rows dict keys: org_id, space_id, user_id, type, title, body, payload,
    dedupe_key
    Returns the number of rows actually inserted.
    """
    if not rows:
        return 0
    stmt = (
        pg_insert(Notification)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["dedupe_key"])
        .returning(Notification.id)
    )
    result = await session.execute(stmt)
    await session.flush()
    inserted = len(result.fetchall())
    logger.info("Inserted %d of %d notifications", inserted, len(rows))
    return inserted


async def log_reminders(
    session: AsyncSession,
    proposal_id: UUID,
    reminder_type: str,
    target_user_ids: list[UUID],
    sent_by: Optional[UUID],
) -> None:
    """Record who was reminded, inside a savepoint.

    A failure here rolls back only the savepoint and propagates, so the caller
    can decide to ignore it without losing the notifications already written.
    """
    if not target_user_ids:
        return
    rows = [
        {
            "proposal_id": proposal_id,
            "reminder_type": reminder_type,
            "target_user_id": user_id,
            "sent_by": sent_by,
        }
        for user_id in target_user_ids
    ]
    stmt = pg_insert(SchedulingReminderLog).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["proposal_id", "reminder_type", "target_user_id"],
        set_={"sent_by": stmt.excluded.sent_by, "sent_at": func.now()},
    )
    async with session.begin_nested():
        await session.execute(stmt)
