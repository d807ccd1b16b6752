from .base import MessageQueueDriver
from .factory import create_driver
from .polling import PollingQueueDriver
from .sqs import SQSDriver

__all__ = [
    "MessageQueueDriver",
    "PollingQueueDriver",
    "SQSDriver",
    "create_driver",
]
