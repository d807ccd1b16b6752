"""
Polling queue driver.

Implements visibility-timeout delivery on a relational table, without a
broker. Each message is one row; its delivery state follows from the row:

- available: receive_count < max and the visibility window has lapsed
- in flight: receive_count < max and the window is still open
- exhausted: receive_count >= max; never delivered again, never removed

Claiming scans, filters and increments inside one transaction, so two
concurrent receivers cannot claim the same row for the same delivery.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Sequence, TypeVar
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from rowqueue.core.config import Settings, require
from rowqueue.core.database import (
    DatabaseManager,
    create_engine_for,
    create_session_factory,
    transaction,
)
from rowqueue.core.exceptions import (
    NoMessagesError,
    NotFoundError,
    StoreError,
    TimingError,
)
from rowqueue.models.base import utcnow
from rowqueue.repositories.queue_message_repository import QueueMessageRepository
from rowqueue.schemas.message import Message, MessageCodec, QueueStats
from .base import MessageQueueDriver

T = TypeVar("T")


class PollingQueueDriver(MessageQueueDriver[T]):
    """
    Queue driver backed by the ``queue_messages`` table.

    Usage:
        driver = PollingQueueDriver(settings, payload_type=dict)
        await driver.create_tables()
        await driver.send({"order_id": 42})
        for message in await driver.receives():
            handle(message.body)
            await driver.delete(message)
    """

    def __init__(
        self,
        settings: Settings,
        payload_type: Any = Any,
        engine: Optional[AsyncEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        require(settings.DATABASE_URL, "DATABASE_URL")
        super().__init__(
            require(settings.QUEUE_NAME, "QUEUE_NAME"),
            settings.OPERATION_TIMEOUT_SECONDS,
        )

        self.settings = settings
        self.codec: MessageCodec[T] = MessageCodec(payload_type)
        self.visibility_timeout = timedelta(seconds=settings.VISIBILITY_TIMEOUT_SECONDS)
        self.max_receive_count = settings.MAX_RECEIVE_COUNT
        self.max_batch_size = settings.MAX_BATCH_SIZE
        self.clock = clock

        self._owns_engine = engine is None
        self.engine = engine if engine is not None else create_engine_for(settings)
        self.session_factory = create_session_factory(self.engine)
        self.db_manager = DatabaseManager(self.engine)

    async def create_tables(self) -> None:
        """Create the queue table if it does not exist yet."""
        await self.db_manager.create_tables()

    async def close(self) -> None:
        if self._owns_engine:
            await self.db_manager.close_connections()

    async def send(self, payload: T, timeout: Optional[float] = None) -> None:
        body = self.codec.encode(payload)
        await self._with_deadline("send", self._insert([body]), timeout)

    async def send_batch(self, payloads: Sequence[T], timeout: Optional[float] = None) -> None:
        """
        Enqueue several payloads in one transaction; none is stored if any fails.
        """
        if not payloads:
            return
        bodies = [self.codec.encode(payload) for payload in payloads]
        await self._with_deadline("send_batch", self._insert(bodies), timeout)

    async def receives(self, timeout: Optional[float] = None) -> List[Message[T]]:
        return await self._with_deadline("receives", self._claim(self.max_batch_size), timeout)

    async def receive(self, timeout: Optional[float] = None) -> Message[T]:
        messages = await self._with_deadline("receive", self._claim(1), timeout)
        return messages[0]

    async def delete(self, message: Message[T], timeout: Optional[float] = None) -> None:
        """
        Acknowledge a received message.

        Deletion is accepted only while the delivery that handed out the tag
        is still in flight. Once the window lapses the message may already be
        on its way to another consumer.

        Raises:
            NotFoundError: If no live message carries the delete tag.
            TimingError: If the visibility window has lapsed or the message
                was never delivered.
        """
        if not message.delete_tag:
            raise NotFoundError("Message has no delete tag; it was not received from a queue")
        await self._with_deadline("delete", self._delete(message.delete_tag), timeout)

    async def stats(self, timeout: Optional[float] = None) -> QueueStats:
        """Count this queue's messages per delivery state."""
        return await self._with_deadline("stats", self._stats(), timeout)

    async def purge(self, older_than: timedelta, timeout: Optional[float] = None) -> int:
        """Physically remove messages deleted more than ``older_than`` ago."""
        return await self._with_deadline("purge", self._purge(older_than), timeout)

    async def _insert(self, bodies: List[str]) -> None:
        now = self.clock()
        try:
            async with transaction(self.session_factory) as session:
                repo = QueueMessageRepository(session)
                if len(bodies) == 1:
                    await repo.create_message(self.queue_name, bodies[0], self._new_delete_tag(), now)
                else:
                    await repo.create_messages(
                        self.queue_name,
                        [(body, self._new_delete_tag()) for body in bodies],
                        now,
                    )
        except SQLAlchemyError as e:
            self.logger.error(f"Error sending messages: {e}")
            raise StoreError(f"Failed to send to {self.queue_name}: {e}") from e

        self.logger.debug("Messages sent", count=len(bodies))

    async def _claim(self, limit: int) -> List[Message[T]]:
        now = self.clock()
        try:
            async with transaction(self.session_factory) as session:
                repo = QueueMessageRepository(session)
                records = await repo.find_available(
                    self.queue_name,
                    self.max_receive_count,
                    now - self.visibility_timeout,
                    limit,
                )
                if not records:
                    raise NoMessagesError(f"No messages available in {self.queue_name}")

                messages = []
                for record in records:
                    message = self.codec.decode_or_report(record.body, record.delete_tag)
                    if not message.ok:
                        self.logger.error(
                            "Failed to decode message",
                            message_id=record.id,
                            error=message.decode_error,
                        )
                    messages.append(message)

                await repo.increment_receive_count([m.delete_tag for m in messages], now)
        except SQLAlchemyError as e:
            self.logger.error(f"Error receiving messages: {e}")
            raise StoreError(f"Failed to receive from {self.queue_name}: {e}") from e

        self.logger.debug("Messages claimed", count=len(messages))
        return messages

    async def _delete(self, delete_tag: str) -> None:
        now = self.clock()
        try:
            async with transaction(self.session_factory) as session:
                repo = QueueMessageRepository(session)
                record = await repo.get_by_delete_tag(delete_tag, for_update=True)
                if record is None:
                    raise NotFoundError(f"No message with delete tag {delete_tag}")

                if record.receive_count == 0:
                    raise TimingError(f"Message {record.id} has not been delivered yet")
                if now >= record.visible_at(self.visibility_timeout):
                    raise TimingError(
                        f"Visibility window of message {record.id} lapsed; it may be redelivered"
                    )

                if not await repo.mark_deleted(record, now):
                    raise TimingError(f"Message {record.id} was claimed again before it could be deleted")
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting message: {e}")
            raise StoreError(f"Failed to delete from {self.queue_name}: {e}") from e

        self.logger.debug("Message deleted", delete_tag=delete_tag)

    async def _stats(self) -> QueueStats:
        now = self.clock()
        try:
            async with transaction(self.session_factory) as session:
                counts = await QueueMessageRepository(session).count_by_state(
                    self.queue_name,
                    self.max_receive_count,
                    now - self.visibility_timeout,
                )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting queue stats: {e}")
            raise StoreError(f"Failed to count messages in {self.queue_name}: {e}") from e

        return QueueStats(queue=self.queue_name, **counts)

    async def _purge(self, older_than: timedelta) -> int:
        cutoff = self.clock() - older_than
        try:
            async with transaction(self.session_factory) as session:
                purged = await QueueMessageRepository(session).purge_deleted(self.queue_name, cutoff)
        except SQLAlchemyError as e:
            self.logger.error(f"Error purging deleted messages: {e}")
            raise StoreError(f"Failed to purge {self.queue_name}: {e}") from e

        if purged:
            self.logger.info("Purged deleted messages", count=purged)
        return purged

    @staticmethod
    def _new_delete_tag() -> str:
        return uuid.uuid4().hex
