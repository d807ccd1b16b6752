from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, PrivateAttr, ValidationError
from pydantic_core import PydanticSerializationError

from rowqueue.core.exceptions import EncodingError

T = TypeVar("T")


class Message(BaseModel, Generic[T]):
    """
    Envelope pairing a caller payload with the delete tag of its delivery.

    Only ``body`` is serialized; the delete tag is assigned on receipt and
    stays local to the process that received the message.

    Attributes:
        body: Caller payload. ``None`` when the stored body could not be decoded.
    """

    body: Optional[T] = None

    _delete_tag: str = PrivateAttr(default="")
    _decode_error: Optional[str] = PrivateAttr(default=None)

    @property
    def delete_tag(self) -> str:
        return self._delete_tag

    def set_delete_tag(self, delete_tag: str) -> None:
        self._delete_tag = delete_tag

    @property
    def decode_error(self) -> Optional[str]:
        """Why the stored body could not be decoded, if it could not."""
        return self._decode_error

    @property
    def ok(self) -> bool:
        return self._decode_error is None


class QueueStats(BaseModel):
    queue: str
    available: int = 0
    in_flight: int = 0
    exhausted: int = 0


class MessageCodec(Generic[T]):
    """JSON (de)serialization of ``Message[T]`` envelopes."""

    def __init__(self, payload_type: Any = Any):
        self.payload_type = payload_type
        self.model = Message[payload_type]

    def encode(self, payload: T) -> str:
        """
        Serialize a payload wrapped in its envelope.

        Raises:
            EncodingError: If the payload is not serializable as ``payload_type``.
        """
        try:
            return self.model(body=payload).model_dump_json()
        except (ValidationError, PydanticSerializationError) as e:
            raise EncodingError(f"Failed to encode message: {e}") from e

    def decode(self, raw: str, delete_tag: str = "") -> Message[T]:
        """
        Deserialize a stored body.

        Raises:
            EncodingError: If ``raw`` is not a valid envelope for ``payload_type``.
        """
        try:
            message = self.model.model_validate_json(raw)
        except ValidationError as e:
            raise EncodingError(f"Failed to decode message: {e}") from e
        message.set_delete_tag(delete_tag)
        return message

    def decode_or_report(self, raw: str, delete_tag: str) -> Message[T]:
        """
        Deserialize a stored body, recording failure on the envelope instead of raising.
        """
        try:
            return self.decode(raw, delete_tag)
        except EncodingError as e:
            message = self.model()
            message.set_delete_tag(delete_tag)
            message._decode_error = str(e)
            return message
