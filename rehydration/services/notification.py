"""Rehydration outcome notifications."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from functools import partial
from typing import TYPE_CHECKING, Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from rehydration.errors import TransportError
from rehydration.models.dataset import DatasetVersion, User

if TYPE_CHECKING:
    from rehydration.config import NotificationConfig

logger = structlog.get_logger()

COMPLETE_SUBJECT = "Dataset Rehydration Complete"
FAILED_SUBJECT = "Dataset Rehydration Failed"


class Notifier(ABC):
    """Tells a requester how their rehydration ended."""

    @abstractmethod
    async def send_rehydration_complete(
        self, dataset: DatasetVersion, user: User, location: str
    ) -> None:
        ...

    @abstractmethod
    async def send_rehydration_failed(
        self, dataset: DatasetVersion, user: User, request_id: str
    ) -> None:
        ...


class LogNotifier(Notifier):
    """Logs notifications instead of sending them."""

    def __init__(self) -> None:
        self._log = logger.bind(component="notifier", type="log")

    async def send_rehydration_complete(
        self, dataset: DatasetVersion, user: User, location: str
    ) -> None:
        self._log.info(
            "notification.complete",
            dataset_id=dataset.dataset_id,
            version_id=dataset.version_id,
            email=user.email,
            location=location,
        )

    async def send_rehydration_failed(
        self, dataset: DatasetVersion, user: User, request_id: str
    ) -> None:
        self._log.info(
            "notification.failed",
            dataset_id=dataset.dataset_id,
            version_id=dataset.version_id,
            email=user.email,
            request_id=request_id,
        )


def complete_body(dataset: DatasetVersion, user: User, location: str, region: str | None) -> str:
    region_line = f"\nRegion: {region}" if region else ""
    return (
        f"Hello {user.name},\n\n"
        f"Dataset {dataset.dataset_id} version {dataset.version_id} has been rehydrated "
        f"and is available at:\n\n{location}{region_line}\n\n"
        "The rehydrated files will be removed automatically when they expire.\n"
    )


def failed_body(dataset: DatasetVersion, user: User, request_id: str, sender: str) -> str:
    return (
        f"Hello {user.name},\n\n"
        f"Rehydration of dataset {dataset.dataset_id} version {dataset.version_id} failed.\n"
        f"Please contact {sender} and include request id {request_id or 'n/a'}.\n"
    )


class SesNotifier(Notifier):
    """Sends plain-text e-mail through SES."""

    def __init__(self, client: Any, sender: str, region: str | None = None) -> None:
        self._client = client
        self._sender = sender
        self._region = region
        self._log = logger.bind(component="notifier", type="ses")

    @classmethod
    def from_config(cls, config: "NotificationConfig") -> "SesNotifier":
        client = boto3.client("ses", region_name=config.region)
        return cls(client, sender=config.sender, region=config.region)

    async def send_rehydration_complete(
        self, dataset: DatasetVersion, user: User, location: str
    ) -> None:
        await self._send(
            user.email,
            COMPLETE_SUBJECT,
            complete_body(dataset, user, location, self._region),
        )

    async def send_rehydration_failed(
        self, dataset: DatasetVersion, user: User, request_id: str
    ) -> None:
        await self._send(
            user.email,
            FAILED_SUBJECT,
            failed_body(dataset, user, request_id, self._sender),
        )

    async def _send(self, recipient: str, subject: str, body: str) -> None:
        try:
            await asyncio.to_thread(
                partial(
                    self._client.send_email,
                    Source=self._sender,
                    Destination={"ToAddresses": [recipient]},
                    Message={
                        "Subject": {"Data": subject, "Charset": "UTF-8"},
                        "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                    },
                )
            )
        except (ClientError, BotoCoreError) as e:
            raise TransportError(
                f"error sending email from {self._sender} to {recipient}: {e}"
            ) from e
        self._log.info("notification.sent", recipient=recipient, subject=subject)


def create_notifier(config: "NotificationConfig") -> Notifier:
    if config.type == "ses":
        return SesNotifier.from_config(config)
    return LogNotifier()
