"""
Amazon SQS driver.

Translates the driver operations onto the SQS API. The SQS receipt handle is
used as the delete tag; visibility and redelivery are handled by the service.
"""
import asyncio
import math
from typing import Any, Dict, List, Optional, Sequence, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from rowqueue.core.config import Settings
from rowqueue.core.exceptions import (
    ConfigurationError,
    NoMessagesError,
    NotFoundError,
    StoreError,
)
from rowqueue.schemas.message import Message, MessageCodec
from .base import MessageQueueDriver

T = TypeVar("T")

SQS_MAX_BATCH = 10
NON_EXISTENT_QUEUE_CODES = {"AWS.SimpleQueueService.NonExistentQueue", "QueueDoesNotExist"}
INVALID_RECEIPT_CODES = {"ReceiptHandleIsInvalid", "InvalidParameterValue"}


class SQSDriver(MessageQueueDriver[T]):
    """
    Queue driver for an SQS queue.

    ``send_batch`` is not atomic here: SQS accepts batches of at most ten
    entries and reports failures per entry.
    """

    def __init__(self, settings: Settings, payload_type: Any = Any, client=None):
        queue_name = settings.SQS_QUEUE_NAME or settings.QUEUE_NAME
        if not queue_name:
            raise ConfigurationError("SQS_QUEUE_NAME is empty")
        super().__init__(queue_name, settings.OPERATION_TIMEOUT_SECONDS)

        self.codec: MessageCodec[T] = MessageCodec(payload_type)
        self.max_batch_size = min(settings.MAX_BATCH_SIZE, SQS_MAX_BATCH)
        self.wait_time_seconds = settings.SQS_WAIT_TIME_SECONDS
        # SQS takes whole seconds; never round a short window down to zero
        self.visibility_timeout = math.ceil(settings.VISIBILITY_TIMEOUT_SECONDS)
        self.client = client or boto3.client(
            "sqs",
            region_name=settings.AWS_REGION,
            config=Config(
                connect_timeout=3,
                read_timeout=settings.SQS_WAIT_TIME_SECONDS + 10,
                retries={"max_attempts": 0},
            ),
        )
        self.queue_url = self._resolve_queue_url(queue_name)

    def _resolve_queue_url(self, queue_name: str) -> str:
        try:
            response = self.client.get_queue_url(QueueName=queue_name)
        except ClientError as e:
            if self._error_code(e) in NON_EXISTENT_QUEUE_CODES:
                raise ConfigurationError(f"SQS queue {queue_name} does not exist") from e
            raise StoreError(f"Failed to get queue url for {queue_name}: {e}") from e
        except BotoCoreError as e:
            raise StoreError(f"Failed to get queue url for {queue_name}: {e}") from e
        return response["QueueUrl"]

    async def send(self, payload: T, timeout: Optional[float] = None) -> None:
        body = self.codec.encode(payload)
        await self._with_deadline(
            "send",
            self._call("send_message", QueueUrl=self.queue_url, MessageBody=body),
            timeout,
        )
        self.logger.debug("Message sent")

    async def send_batch(self, payloads: Sequence[T], timeout: Optional[float] = None) -> None:
        if not payloads:
            return
        bodies = [self.codec.encode(payload) for payload in payloads]
        await self._with_deadline("send_batch", self._send_chunks(bodies), timeout)
        self.logger.debug("Messages sent", count=len(bodies))

    async def _send_chunks(self, bodies: List[str]) -> None:
        for start in range(0, len(bodies), SQS_MAX_BATCH):
            chunk = bodies[start:start + SQS_MAX_BATCH]
            response = await self._call(
                "send_message_batch",
                QueueUrl=self.queue_url,
                Entries=[
                    {"Id": str(start + i), "MessageBody": body}
                    for i, body in enumerate(chunk)
                ],
            )
            failed = response.get("Failed") or []
            if failed:
                reasons = ", ".join(f"{f.get('Id')}: {f.get('Message', f.get('Code'))}" for f in failed)
                raise StoreError(f"SQS rejected {len(failed)} batch entries ({reasons})")

    async def receives(self, timeout: Optional[float] = None) -> List[Message[T]]:
        return await self._with_deadline("receives", self._receive(self.max_batch_size), timeout)

    async def receive(self, timeout: Optional[float] = None) -> Message[T]:
        messages = await self._with_deadline("receive", self._receive(1), timeout)
        return messages[0]

    async def _receive(self, limit: int) -> List[Message[T]]:
        response = await self._call(
            "receive_message",
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=limit,
            WaitTimeSeconds=self.wait_time_seconds,
            VisibilityTimeout=self.visibility_timeout,
        )
        raw_messages = response.get("Messages") or []
        if not raw_messages:
            raise NoMessagesError(f"No messages available in {self.queue_name}")

        messages = []
        for raw in raw_messages:
            message = self.codec.decode_or_report(raw["Body"], raw["ReceiptHandle"])
            if not message.ok:
                self.logger.error(
                    "Failed to decode message",
                    message_id=raw.get("MessageId"),
                    error=message.decode_error,
                )
            messages.append(message)

        self.logger.debug("Messages received", count=len(messages))
        return messages

    async def delete(self, message: Message[T], timeout: Optional[float] = None) -> None:
        if not message.delete_tag:
            raise NotFoundError("Message has no delete tag; it was not received from a queue")
        try:
            await self._with_deadline(
                "delete",
                self._call("delete_message", QueueUrl=self.queue_url, ReceiptHandle=message.delete_tag),
                timeout,
            )
        except StoreError as e:
            if isinstance(e.__cause__, ClientError) and self._error_code(e.__cause__) in INVALID_RECEIPT_CODES:
                raise NotFoundError(f"Invalid receipt handle for {self.queue_name}") from e.__cause__
            raise
        self.logger.debug("Message deleted")

    async def _call(self, operation: str, **params) -> Dict[str, Any]:
        """Run a blocking SQS call in a worker thread."""
        method = getattr(self.client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"SQS {operation} failed: {e}")
            raise StoreError(f"SQS {operation} failed: {e}") from e

    @staticmethod
    def _error_code(error: ClientError) -> str:
        return error.response.get("Error", {}).get("Code", "")
