from .message import Message, MessageCodec, QueueStats

__all__ = [
    "Message",
    "MessageCodec",
    "QueueStats",
]
