from abc import ABC, abstractmethod
import asyncio
from typing import Awaitable, Generic, List, Optional, Sequence, TypeVar

from rowqueue.core.exceptions import QueueTimeoutError
from rowqueue.core.logging import get_logger
from rowqueue.schemas.message import Message

T = TypeVar("T")
R = TypeVar("R")


class MessageQueueDriver(ABC, Generic[T]):
    """
    Operation surface shared by every queue backend.

    Delivery is at-least-once: a received message that is not deleted before
    its visibility window lapses is delivered again. Every operation accepts a
    ``timeout`` in seconds; ``None`` uses the driver's configured default.
    Nothing is retried internally.
    """

    def __init__(self, queue_name: str, operation_timeout: float):
        self.queue_name = queue_name
        self.operation_timeout = operation_timeout
        self.logger = get_logger(self.__class__.__name__, queue=queue_name)

    @abstractmethod
    async def send(self, payload: T, timeout: Optional[float] = None) -> None:
        """
        Enqueue one payload.

        Raises:
            DuplicateMessageError: If the same content is already queued.
            EncodingError: If the payload cannot be serialized.
        """
        pass

    @abstractmethod
    async def send_batch(self, payloads: Sequence[T], timeout: Optional[float] = None) -> None:
        """Enqueue several payloads."""
        pass

    @abstractmethod
    async def receives(self, timeout: Optional[float] = None) -> List[Message[T]]:
        """
        Claim up to one batch of messages.

        Raises:
            NoMessagesError: If nothing is eligible for delivery.
        """
        pass

    @abstractmethod
    async def receive(self, timeout: Optional[float] = None) -> Message[T]:
        """
        Claim a single message.

        Raises:
            NoMessagesError: If nothing is eligible for delivery.
        """
        pass

    @abstractmethod
    async def delete(self, message: Message[T], timeout: Optional[float] = None) -> None:
        """
        Acknowledge a received message so it is never delivered again.

        Raises:
            NotFoundError: If no message carries the delete tag.
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    async def _with_deadline(self, operation: str, coro: Awaitable[R], timeout: Optional[float]) -> R:
        """Run ``coro`` under the caller deadline, cancelling it on expiry."""
        limit = self.operation_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(coro, timeout=limit)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"{operation} exceeded deadline", timeout=limit)
            raise QueueTimeoutError(f"{operation} on {self.queue_name} exceeded {limit}s") from e

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
