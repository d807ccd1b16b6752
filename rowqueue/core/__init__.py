from .config import DatabaseBackend, Settings, load_settings
from .exceptions import (
    QueueError,
    ConfigurationError,
    DuplicateMessageError,
    EncodingError,
    NoMessagesError,
    NotFoundError,
    TimingError,
    StoreError,
    QueueTimeoutError,
)
from .logging import get_logger, setup_logging

__all__ = [
    "DatabaseBackend",
    "Settings",
    "load_settings",
    "QueueError",
    "ConfigurationError",
    "DuplicateMessageError",
    "EncodingError",
    "NoMessagesError",
    "NotFoundError",
    "TimingError",
    "StoreError",
    "QueueTimeoutError",
    "get_logger",
    "setup_logging",
]
