"""Unit tests for the SQS queue client."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoRegionError

from sqsworker.main.exceptions import ConfigurationError
from sqsworker.queue.client import SqsQueueClient, get_sqs_client

QUEUE_URL = "https://sqs.eu-north-1.amazonaws.com/123456789012/jobs"


def client_error(operation):
    return ClientError(
        {"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "no queue"}},
        operation,
    )


@pytest.fixture
def sqs():
    return MagicMock()


@pytest.fixture
def queue_client(sqs):
    return SqsQueueClient(sqs, QUEUE_URL, visibility_timeout=60, wait_seconds=1)


class TestReceive:
    def test_requests_single_message(self, sqs, queue_client):
        sqs.receive_message.return_value = {
            "Messages": [{"MessageId": "m1", "ReceiptHandle": "rh-1", "Body": "foo"}]
        }

        message = queue_client.receive()

        assert message.message_id == "m1"
        assert message.receipt_handle == "rh-1"
        sqs.receive_message.assert_called_once_with(
            QueueUrl=QUEUE_URL,
            MaxNumberOfMessages=1,
            WaitTimeSeconds=1,
            AttributeNames=["All"],
            MessageAttributeNames=["All"],
            VisibilityTimeout=60,
        )

    def test_omits_visibility_timeout_when_unset(self, sqs):
        sqs.receive_message.return_value = {}

        SqsQueueClient(sqs, QUEUE_URL).receive()

        assert "VisibilityTimeout" not in sqs.receive_message.call_args.kwargs

    def test_empty_queue_returns_none(self, sqs, queue_client):
        sqs.receive_message.return_value = {"Messages": []}

        assert queue_client.receive() is None

    def test_transport_error_returns_none(self, sqs, queue_client):
        """Should log and report an empty poll rather than raise."""
        sqs.receive_message.side_effect = EndpointConnectionError(endpoint_url=QUEUE_URL)

        with patch("sqsworker.queue.client.logger") as mock_logger:
            assert queue_client.receive() is None

        mock_logger.error.assert_called_once()

    def test_malformed_entry_returns_none(self, sqs, queue_client):
        sqs.receive_message.return_value = {"Messages": [{"MessageId": "m1"}]}

        assert queue_client.receive() is None


class TestDelete:
    def test_deletes_with_receipt_handle(self, sqs, queue_client, make_message):
        assert queue_client.delete(make_message("m1")) is True

        sqs.delete_message.assert_called_once_with(QueueUrl=QUEUE_URL, ReceiptHandle="rh-m1")

    def test_client_error_returns_false(self, sqs, queue_client, make_message):
        sqs.delete_message.side_effect = client_error("DeleteMessage")

        assert queue_client.delete(make_message("m1")) is False


class TestChangeVisibility:
    def test_changes_visibility(self, sqs, queue_client, make_message):
        assert queue_client.change_visibility(make_message("m1"), 30) is True

        sqs.change_message_visibility.assert_called_once_with(
            QueueUrl=QUEUE_URL,
            ReceiptHandle="rh-m1",
            VisibilityTimeout=30,
        )

    def test_client_error_returns_false(self, sqs, queue_client, make_message):
        sqs.change_message_visibility.side_effect = client_error("ChangeMessageVisibility")

        assert queue_client.change_visibility(make_message("m1"), 30) is False


class TestFromSettings:
    def test_builds_boto3_client(self, test_settings):
        settings = test_settings.model_copy(update={"endpoint_url": "http://localhost:4566"})

        with patch("sqsworker.queue.client.boto3.client") as boto_client:
            queue_client = SqsQueueClient.from_settings(settings)

        assert queue_client.queue_url == settings.queue_url
        args, kwargs = boto_client.call_args
        assert args == ("sqs",)
        assert kwargs["region_name"] == "eu-north-1"
        assert kwargs["endpoint_url"] == "http://localhost:4566"

    def test_missing_region_is_configuration_error(self, test_settings):
        with patch("sqsworker.queue.client.boto3.client", side_effect=NoRegionError()):
            with pytest.raises(ConfigurationError):
                get_sqs_client(test_settings)
