"""Unit tests for notifiers."""

from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from rehydration.config import NotificationConfig
from rehydration.errors import TransportError
from rehydration.services.notification import (
    COMPLETE_SUBJECT,
    FAILED_SUBJECT,
    LogNotifier,
    SesNotifier,
    complete_body,
    create_notifier,
    failed_body,
)

SENDER = "support@pennsieve.io"
LOCATION = "s3://rehydration-bucket/5065/2/"


@pytest.fixture
def ses_client():
    return boto3.client(
        "ses",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def _expected(recipient: str, subject: str, body: str) -> dict:
    return {
        "Source": SENDER,
        "Destination": {"ToAddresses": [recipient]},
        "Message": {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
        },
    }


def test_complete_body(dataset, user):
    body = complete_body(dataset, user, LOCATION, "us-east-1")

    assert body.startswith("Hello Ada Lovelace,")
    assert "Dataset 5065 version 2" in body
    assert LOCATION in body
    assert "Region: us-east-1" in body


def test_failed_body_includes_request_id(dataset, user):
    assert "request id req-9" in failed_body(dataset, user, "req-9", SENDER)
    assert "request id n/a" in failed_body(dataset, user, "", SENDER)


async def test_ses_sends_complete(ses_client, dataset, user):
    notifier = SesNotifier(ses_client, sender=SENDER, region="us-east-1")
    with Stubber(ses_client) as stub:
        stub.add_response(
            "send_email",
            {"MessageId": "m-1"},
            _expected(user.email, COMPLETE_SUBJECT, complete_body(dataset, user, LOCATION, "us-east-1")),
        )

        await notifier.send_rehydration_complete(dataset, user, LOCATION)

        stub.assert_no_pending_responses()


async def test_ses_sends_failed(ses_client, dataset, user):
    notifier = SesNotifier(ses_client, sender=SENDER)
    with Stubber(ses_client) as stub:
        stub.add_response(
            "send_email",
            {"MessageId": "m-2"},
            _expected(user.email, FAILED_SUBJECT, failed_body(dataset, user, "req-1", SENDER)),
        )

        await notifier.send_rehydration_failed(dataset, user, "req-1")

        stub.assert_no_pending_responses()


async def test_ses_error_is_transport_error(ses_client, dataset, user):
    notifier = SesNotifier(ses_client, sender=SENDER)
    with Stubber(ses_client) as stub:
        stub.add_client_error("send_email", service_error_code="MessageRejected", http_status_code=400)

        with pytest.raises(TransportError, match=user.email):
            await notifier.send_rehydration_complete(dataset, user, LOCATION)


async def test_log_notifier_does_not_raise(dataset, user):
    notifier = LogNotifier()
    await notifier.send_rehydration_complete(dataset, user, LOCATION)
    await notifier.send_rehydration_failed(dataset, user, "req-1")


def test_create_notifier_defaults_to_log():
    assert isinstance(create_notifier(NotificationConfig()), LogNotifier)


def test_create_notifier_ses():
    notifier = create_notifier(NotificationConfig(type="ses", region="us-east-1"))
    assert isinstance(notifier, SesNotifier)
