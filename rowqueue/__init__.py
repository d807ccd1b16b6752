"""
rowqueue

Generic message queue with interchangeable backends:
- PollingQueueDriver: visibility-timeout delivery on a relational table
- SQSDriver: Amazon SQS
- QueueConsumer: poll loop that acknowledges handled messages
"""

from rowqueue.core import (
    ConfigurationError,
    DuplicateMessageError,
    EncodingError,
    NoMessagesError,
    NotFoundError,
    QueueError,
    QueueTimeoutError,
    Settings,
    StoreError,
    TimingError,
    load_settings,
)
from rowqueue.drivers import MessageQueueDriver, PollingQueueDriver, SQSDriver, create_driver
from rowqueue.schemas import Message, QueueStats
from rowqueue.workers import QueueConsumer, run_worker

__all__ = [
    "ConfigurationError",
    "DuplicateMessageError",
    "EncodingError",
    "NoMessagesError",
    "NotFoundError",
    "QueueError",
    "QueueTimeoutError",
    "StoreError",
    "TimingError",
    "Settings",
    "load_settings",
    "Message",
    "QueueStats",
    "MessageQueueDriver",
    "PollingQueueDriver",
    "SQSDriver",
    "create_driver",
    "QueueConsumer",
    "run_worker",
]
