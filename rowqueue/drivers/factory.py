from typing import Any

from rowqueue.core.config import QueueDriverKind, Settings
from rowqueue.core.exceptions import ConfigurationError
from .base import MessageQueueDriver
from .polling import PollingQueueDriver
from .sqs import SQSDriver


def create_driver(settings: Settings, payload_type: Any = Any) -> MessageQueueDriver:
    """Build the driver selected by ``QUEUE_DRIVER``."""
    if settings.QUEUE_DRIVER == QueueDriverKind.POLLING:
        return PollingQueueDriver(settings, payload_type=payload_type)
    if settings.QUEUE_DRIVER == QueueDriverKind.SQS:
        return SQSDriver(settings, payload_type=payload_type)
    raise ConfigurationError(f"Unsupported queue driver: {settings.QUEUE_DRIVER}")
