from .queue_message_repository import QueueMessageRepository

__all__ = [
    "QueueMessageRepository",
]
