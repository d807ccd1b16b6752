import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from rowqueue.core.exceptions import NoMessagesError, NotFoundError, QueueError, TimingError
from rowqueue.core.config import Settings, load_settings
from rowqueue.core.logging import get_logger, setup_logging
from rowqueue.drivers.base import MessageQueueDriver
from rowqueue.drivers.factory import create_driver
from rowqueue.drivers.polling import PollingQueueDriver
from rowqueue.schemas.message import Message

T = TypeVar("T")

Handler = Callable[[Message[T]], Awaitable[bool]]


class QueueConsumer(Generic[T]):
    """
    Poll loop over a queue driver.

    Each received message goes to ``handler``; a ``True`` result deletes it.
    A ``False`` result, an exception or an undecodable body leaves the message
    alone so the queue redelivers it after the visibility window, until its
    receive count is exhausted.
    """

    def __init__(self, driver: MessageQueueDriver[T], handler: Handler, poll_interval: float = 1.0):
        self.driver = driver
        self.handler = handler
        self.poll_interval = poll_interval
        self.logger = get_logger(self.__class__.__name__, queue=driver.queue_name)

    async def process_message(self, message: Message[T]) -> bool:
        """
        Hand one message to the handler and acknowledge it on success.

        Returns:
            bool: True if the message was deleted.
        """
        if not message.ok:
            self.logger.warning("Skipping undecodable message", error=message.decode_error)
            return False

        try:
            success = await self.handler(message)
        except Exception as e:
            self.logger.error(f"Error processing message: {e}")
            return False

        if not success:
            self.logger.debug("Handler declined message; leaving it for redelivery")
            return False

        try:
            await self.driver.delete(message)
        except (NotFoundError, TimingError) as e:
            # Processed, but the claim lapsed; the message may run again.
            self.logger.warning(f"Could not acknowledge message: {e}")
            return False
        return True

    async def run_once(self) -> int:
        """
        Receive one batch and process it.

        Returns:
            int: Number of messages received (0 when the queue had none).
        """
        try:
            messages = await self.driver.receives()
        except NoMessagesError:
            return 0

        deleted = 0
        for message in messages:
            if await self.process_message(message):
                deleted += 1

        self.logger.info("Batch processed", received=len(messages), deleted=deleted)
        return len(messages)

    async def run_consumer(self, stop_event: Optional[asyncio.Event] = None):
        """Main consumer loop; runs until ``stop_event`` is set."""
        stop_event = stop_event or asyncio.Event()
        self.logger.info("Starting consumer")

        while not stop_event.is_set():
            try:
                received = await self.run_once()
            except QueueError as e:
                self.logger.error(f"Error in consumer loop: {e}")
                received = 0

            if received == 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

        self.logger.info("Consumer stopped")


async def run_worker(
    handler: Handler,
    settings: Optional[Settings] = None,
    payload_type: Any = Any,
    stop_event: Optional[asyncio.Event] = None,
):
    """
    Configure logging, build the configured driver and consume until stopped.
    """
    settings = settings or load_settings()
    setup_logging(settings.LOG_LEVEL, json_output=settings.ENVIRONMENT != "development")

    driver = create_driver(settings, payload_type=payload_type)
    try:
        if isinstance(driver, PollingQueueDriver):
            await driver.create_tables()
        consumer = QueueConsumer(driver, handler, poll_interval=settings.CONSUMER_POLL_INTERVAL_SECONDS)
        await consumer.run_consumer(stop_event)
    finally:
        await driver.close()
