from datetime import datetime
import hashlib
from typing import Dict, List, Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rowqueue.core.exceptions import DuplicateMessageError
from rowqueue.models.queue_message import QueueMessage
from .base_repository import BaseRepository


class QueueMessageRepository(BaseRepository[QueueMessage]):
    """Repository for QueueMessage operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(QueueMessage, session)

    async def create_message(self, queue_name: str, body: str, delete_tag: str, now: datetime) -> QueueMessage:
        """
        Insert a new, never-received message.

        Raises:
            DuplicateMessageError: If the body already exists in the queue.
        """
        try:
            return await self.create(self._new_message(queue_name, body, delete_tag, now))
        except IntegrityError as e:
            raise DuplicateMessageError(f"Message body already queued in {queue_name}") from e

    async def create_messages(self, queue_name: str, items: Sequence[tuple], now: datetime) -> List[QueueMessage]:
        """
        Insert several messages at once; ``items`` holds ``(body, delete_tag)`` pairs.

        Raises:
            DuplicateMessageError: If any body already exists in the queue or
                repeats within the batch.
        """
        try:
            return await self.create_many([
                self._new_message(queue_name, body, delete_tag, now)
                for body, delete_tag in items
            ])
        except IntegrityError as e:
            raise DuplicateMessageError(f"Batch contains a body already queued in {queue_name}") from e

    async def find_available(
        self,
        queue_name: str,
        max_receive_count: int,
        visible_before: datetime,
        limit: int,
    ) -> List[QueueMessage]:
        """
        Get deliverable messages, oldest update first.

        A message is deliverable while its receive count is under the limit and
        its last claim happened at or before ``visible_before``. Rows are locked
        for the rest of the transaction; rows locked by a concurrent claim are
        skipped where the dialect supports it.
        """
        query = (
            select(QueueMessage)
            .where(
                QueueMessage.queue_name == queue_name,
                QueueMessage.deleted_at.is_(None),
                QueueMessage.receive_count < max_receive_count,
                QueueMessage.updated_at <= visible_before,
            )
            .order_by(QueueMessage.updated_at.asc(), QueueMessage.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def increment_receive_count(self, delete_tags: Sequence[str], now: datetime) -> int:
        """Record one more delivery for each tag and restart its visibility window."""
        if not delete_tags:
            return 0

        query = (
            update(QueueMessage)
            .where(QueueMessage.delete_tag.in_(list(delete_tags)))
            .values(receive_count=QueueMessage.receive_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(query)
        return result.rowcount

    async def get_by_delete_tag(self, delete_tag: str, for_update: bool = False) -> Optional[QueueMessage]:
        """Get a live (not deleted) message by its delete tag, optionally locking its row."""
        query = select(QueueMessage).where(
            QueueMessage.delete_tag == delete_tag,
            QueueMessage.deleted_at.is_(None),
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalars().first()

    async def mark_deleted(self, message: QueueMessage, now: datetime) -> bool:
        """
        Logically delete a message as last read.

        Returns False if it was deleted or claimed again since ``message`` was loaded.
        """
        query = (
            update(QueueMessage)
            .where(
                QueueMessage.id == message.id,
                QueueMessage.deleted_at.is_(None),
                QueueMessage.receive_count == message.receive_count,
            )
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(query)
        return result.rowcount > 0

    async def count_by_state(
        self,
        queue_name: str,
        max_receive_count: int,
        visible_before: datetime,
    ) -> Dict[str, int]:
        """Count live messages of a queue per delivery state."""
        deliverable = QueueMessage.receive_count < max_receive_count
        visible = QueueMessage.updated_at <= visible_before

        query = select(
            func.sum(case((deliverable & visible, 1), else_=0)),
            func.sum(case((deliverable & ~visible, 1), else_=0)),
            func.sum(case((~deliverable, 1), else_=0)),
        ).where(
            QueueMessage.queue_name == queue_name,
            QueueMessage.deleted_at.is_(None),
        )
        result = await self.session.execute(query)
        available, in_flight, exhausted = result.one()
        return {
            "available": int(available or 0),
            "in_flight": int(in_flight or 0),
            "exhausted": int(exhausted or 0),
        }

    async def purge_deleted(self, queue_name: str, deleted_before: datetime) -> int:
        """Remove rows logically deleted before the cutoff."""
        query = delete(QueueMessage).where(
            QueueMessage.queue_name == queue_name,
            QueueMessage.deleted_at.is_not(None),
            QueueMessage.deleted_at < deleted_before,
        )
        result = await self.session.execute(query)
        return result.rowcount

    @staticmethod
    def _new_message(queue_name: str, body: str, delete_tag: str, now: datetime) -> dict:
        return {
            "queue_name": queue_name,
            "body": body,
            "body_hash": hash_body(body),
            "receive_count": 0,
            "delete_tag": delete_tag,
            "created_at": now,
            "updated_at": now,
        }


def hash_body(body: str) -> str:
    """Hex sha256 digest used for content uniqueness."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()
