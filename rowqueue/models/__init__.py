from .queue_message import QueueMessage

__all__ = [
    "QueueMessage",
]
