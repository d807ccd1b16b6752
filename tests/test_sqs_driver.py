"""
Unit tests for the SQS driver with a mocked boto3 client.
"""
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from rowqueue.core.config import load_settings
from rowqueue.core.exceptions import (
    ConfigurationError,
    NoMessagesError,
    NotFoundError,
    StoreError,
)
from rowqueue.drivers.sqs import SQSDriver
from rowqueue.schemas.message import Message

QUEUE_URL = "https://sqs.eu-west-1.amazonaws.com/123456789012/jobs"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def sqs_settings():
    return load_settings(SQS_QUEUE_NAME="jobs", ENVIRONMENT="testing", AWS_REGION="eu-west-1")


@pytest.fixture
def mock_sqs_client():
    """Mock boto3 SQS client."""
    client = MagicMock()
    client.get_queue_url.return_value = {"QueueUrl": QUEUE_URL}
    client.send_message.return_value = {"MessageId": "m-1"}
    client.send_message_batch.return_value = {"Successful": [], "Failed": []}
    client.receive_message.return_value = {"Messages": []}
    client.delete_message.return_value = {}
    return client


@pytest.fixture
def sqs_driver(sqs_settings, mock_sqs_client):
    return SQSDriver(sqs_settings, payload_type=dict, client=mock_sqs_client)


class TestSQSDriverSetup:
    """Test cases for construction."""

    def test_resolves_queue_url(self, sqs_driver, mock_sqs_client):
        assert sqs_driver.queue_url == QUEUE_URL
        mock_sqs_client.get_queue_url.assert_called_once_with(QueueName="jobs")

    def test_visibility_rounded_up_to_whole_seconds(self, mock_sqs_client):
        settings = load_settings(SQS_QUEUE_NAME="jobs", ENVIRONMENT="testing", VISIBILITY_TIMEOUT_SECONDS=0.5)

        driver = SQSDriver(settings, client=mock_sqs_client)

        assert driver.visibility_timeout == 1

    @pytest.mark.asyncio
    async def test_receive_never_requests_zero_visibility(self, mock_sqs_client):
        settings = load_settings(SQS_QUEUE_NAME="jobs", ENVIRONMENT="testing", VISIBILITY_TIMEOUT_SECONDS=2.5)
        driver = SQSDriver(settings, client=mock_sqs_client)

        with pytest.raises(NoMessagesError):
            await driver.receives()

        assert mock_sqs_client.receive_message.call_args.kwargs["VisibilityTimeout"] == 3

    def test_missing_queue_name(self, mock_sqs_client):
        settings = load_settings(ENVIRONMENT="testing")

        with pytest.raises(ConfigurationError):
            SQSDriver(settings, client=mock_sqs_client)

    def test_falls_back_to_queue_name(self, mock_sqs_client):
        settings = load_settings(QUEUE_NAME="fallback", ENVIRONMENT="testing")

        driver = SQSDriver(settings, client=mock_sqs_client)

        assert driver.queue_name == "fallback"

    def test_queue_does_not_exist(self, sqs_settings, mock_sqs_client):
        mock_sqs_client.get_queue_url.side_effect = client_error(
            "AWS.SimpleQueueService.NonExistentQueue", "GetQueueUrl"
        )

        with pytest.raises(ConfigurationError):
            SQSDriver(sqs_settings, client=mock_sqs_client)

    def test_queue_url_lookup_failure(self, sqs_settings, mock_sqs_client):
        mock_sqs_client.get_queue_url.side_effect = client_error("AccessDenied", "GetQueueUrl")

        with pytest.raises(StoreError):
            SQSDriver(sqs_settings, client=mock_sqs_client)


class TestSQSDriverOperations:
    """Test cases for send, receive and delete."""

    @pytest.mark.asyncio
    async def test_send(self, sqs_driver, mock_sqs_client):
        await sqs_driver.send({"order_id": 1})

        kwargs = mock_sqs_client.send_message.call_args.kwargs
        assert kwargs["QueueUrl"] == QUEUE_URL
        assert json.loads(kwargs["MessageBody"]) == {"body": {"order_id": 1}}

    @pytest.mark.asyncio
    async def test_send_failure(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.send_message.side_effect = client_error("InternalError", "SendMessage")

        with pytest.raises(StoreError):
            await sqs_driver.send({"order_id": 1})

    @pytest.mark.asyncio
    async def test_send_batch_in_chunks_of_ten(self, sqs_driver, mock_sqs_client):
        await sqs_driver.send_batch([{"n": i} for i in range(25)])

        calls = mock_sqs_client.send_message_batch.call_args_list
        assert [len(c.kwargs["Entries"]) for c in calls] == [10, 10, 5]
        ids = [e["Id"] for c in calls for e in c.kwargs["Entries"]]
        assert len(set(ids)) == 25

    @pytest.mark.asyncio
    async def test_send_batch_partial_failure(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.send_message_batch.return_value = {
            "Successful": [],
            "Failed": [{"Id": "1", "Code": "InternalError", "Message": "try again"}],
        }

        with pytest.raises(StoreError, match="1 batch entries"):
            await sqs_driver.send_batch([{"n": 0}, {"n": 1}])

    @pytest.mark.asyncio
    async def test_receives_maps_receipt_handle(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.receive_message.return_value = {
            "Messages": [
                {"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": '{"body": {"n": 1}}'},
                {"MessageId": "m-2", "ReceiptHandle": "rh-2", "Body": '{"body": {"n": 2}}'},
            ]
        }

        messages = await sqs_driver.receives()

        assert [m.body for m in messages] == [{"n": 1}, {"n": 2}]
        assert [m.delete_tag for m in messages] == ["rh-1", "rh-2"]
        kwargs = mock_sqs_client.receive_message.call_args.kwargs
        assert kwargs["MaxNumberOfMessages"] == 10
        assert kwargs["VisibilityTimeout"] == 10

    @pytest.mark.asyncio
    async def test_receives_empty(self, sqs_driver, mock_sqs_client):
        with pytest.raises(NoMessagesError):
            await sqs_driver.receives()

    @pytest.mark.asyncio
    async def test_receives_reports_undecodable_body(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.receive_message.return_value = {
            "Messages": [{"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": "not json"}]
        }

        messages = await sqs_driver.receives()

        assert not messages[0].ok
        assert messages[0].delete_tag == "rh-1"

    @pytest.mark.asyncio
    async def test_receive_single(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.receive_message.return_value = {
            "Messages": [{"MessageId": "m-1", "ReceiptHandle": "rh-1", "Body": '{"body": {}}'}]
        }

        message = await sqs_driver.receive()

        assert message.delete_tag == "rh-1"
        assert mock_sqs_client.receive_message.call_args.kwargs["MaxNumberOfMessages"] == 1

    @pytest.mark.asyncio
    async def test_delete(self, sqs_driver, mock_sqs_client):
        message = Message[dict](body={})
        message.set_delete_tag("rh-1")

        await sqs_driver.delete(message)

        mock_sqs_client.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="rh-1")

    @pytest.mark.asyncio
    async def test_delete_invalid_receipt(self, sqs_driver, mock_sqs_client):
        mock_sqs_client.delete_message.side_effect = client_error("ReceiptHandleIsInvalid", "DeleteMessage")
        message = Message[dict](body={})
        message.set_delete_tag("stale")

        with pytest.raises(NotFoundError):
            await sqs_driver.delete(message)

    @pytest.mark.asyncio
    async def test_delete_without_tag(self, sqs_driver, mock_sqs_client):
        with pytest.raises(NotFoundError):
            await sqs_driver.delete(Message[dict](body={}))

        mock_sqs_client.delete_message.assert_not_called()
