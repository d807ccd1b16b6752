class QueueError(Exception):
    """Base class for every error raised by a queue driver."""
    pass


class ConfigurationError(QueueError):
    """Raised when a required setting is missing or invalid."""
    pass


class DuplicateMessageError(QueueError):
    """Raised when the serialized body already exists in the queue."""
    pass


class EncodingError(QueueError):
    """Raised when a payload cannot be serialized or deserialized."""
    pass


class NoMessagesError(QueueError):
    """Raised when a receive finds nothing eligible for delivery."""
    pass


class NotFoundError(QueueError):
    """Raised when no live message carries the given delete tag."""
    pass


class TimingError(QueueError):
    """Raised when a delete is attempted outside the delivery's visibility window."""
    pass


class StoreError(QueueError):
    """Raised on transaction or connectivity failures of the backing store."""
    pass


class QueueTimeoutError(QueueError, TimeoutError):
    """Raised when an operation exceeds the caller's deadline."""
    pass
