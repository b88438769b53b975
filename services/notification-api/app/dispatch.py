"""Dispatch engine - fans one notification out to every active device of an identity."""

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from . import codec
from .errors import InvalidPayload, MalformedSubscription, TransportError
from .models import (
    DeviceOutcome,
    DeviceRegistration,
    DispatchResult,
    ErrorKind,
    NotificationPayload,
)
from .reconciler import FailureReconciler
from .registry import DeviceRegistry
from .transport import PushTransport

logger = logging.getLogger(__name__)

MESSAGE_TYPE = "PUSH_NOTIFICATION"
DEFAULT_BADGE = "/badge.png"
DEFAULT_VIBRATE = [200, 100, 200]


def validate_payload(payload: Union[NotificationPayload, Mapping[str, Any], None]) -> NotificationPayload:
    """
    Validate a dispatch payload once, at the engine boundary.

    Raises:
        InvalidPayload: If title or body is missing or empty, or unknown fields are present
    """
    if isinstance(payload, NotificationPayload):
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidPayload("Notification payload must be an object")

    try:
        return NotificationPayload.model_validate(dict(payload))
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidPayload(f"Invalid notification payload ({problems})") from e


class DispatchEngine:
    """Resolves active devices, sends concurrently and aggregates outcomes."""

    def __init__(
        self,
        registry: DeviceRegistry,
        transport: PushTransport,
        reconciler: Optional[FailureReconciler] = None,
        max_concurrent_sends: int = 10,
        default_icon: str = "/icons/icon-192x192.png",
        default_tag: str = "default-notification",
        default_url: str = "/",
    ):
        self._registry = registry
        self._transport = transport
        self._reconciler = reconciler or FailureReconciler(registry)
        self._max_concurrent_sends = max(1, max_concurrent_sends)
        self._default_icon = default_icon
        self._default_tag = default_tag
        self._default_url = default_url

    def build_message(self, owner_id: str, notification: NotificationPayload) -> Dict[str, Any]:
        """Build the canonical message consumed by the service worker."""
        data = {"url": notification.url or self._default_url}
        data.update(notification.data or {})
        data["userId"] = owner_id

        return {
            "type": MESSAGE_TYPE,
            "notification": {
                "title": notification.title,
                "body": notification.body,
                "icon": notification.icon or self._default_icon,
                "tag": notification.tag or self._default_tag,
                "badge": DEFAULT_BADGE,
                "vibrate": DEFAULT_VIBRATE,
                "requireInteraction": False,
            },
            "data": data,
        }

    async def dispatch(
        self,
        owner_id: str,
        payload: Union[NotificationPayload, Mapping[str, Any]],
    ) -> DispatchResult:
        """
        Notify every active device of owner_id.

        Args:
            owner_id: Target identity
            payload: Notification title, body and optional url/icon/tag/data

        Returns:
            DispatchResult: Sent and total counts plus one outcome per device

        Raises:
            InvalidPayload: Before the registry is touched
            StorageUnavailable: If the device list cannot be read
        """
        notification = validate_payload(payload)

        devices = await self._registry.list_active_by_owner(owner_id)
        if not devices:
            logger.info(f"No active devices for {owner_id}, skipping push notification")
            return DispatchResult(sent=0, total=0, outcomes=[])

        message = self.build_message(owner_id, notification)
        semaphore = asyncio.Semaphore(self._max_concurrent_sends)
        outcomes: List[Optional[DeviceOutcome]] = [None] * len(devices)

        async def deliver(index: int, device: DeviceRegistration) -> None:
            async with semaphore:
                outcomes[index] = await self._send_one(device, message)

        async with asyncio.TaskGroup() as group:
            for index, device in enumerate(devices):
                group.create_task(deliver(index, device))

        async with asyncio.TaskGroup() as group:
            for device, outcome in zip(devices, outcomes):
                group.create_task(self._reconciler.reconcile(device, outcome))

        sent = sum(1 for outcome in outcomes if outcome.success)
        logger.info(f"Push dispatch for {owner_id}: {sent} of {len(devices)} devices notified")

        return DispatchResult(sent=sent, total=len(devices), outcomes=outcomes)

    async def _send_one(self, device: DeviceRegistration, message: Dict[str, Any]) -> DeviceOutcome:
        try:
            subscription = codec.decode(device.subscription)
        except MalformedSubscription as e:
            logger.warning(f"Skipping device {device.id}: {e}")
            return DeviceOutcome(
                deviceId=device.id, success=False, errorKind=ErrorKind.MALFORMED_SUBSCRIPTION
            )

        try:
            await self._transport.send(subscription, message)
        except TransportError as e:
            kind = ErrorKind.PERMANENT if e.permanent else ErrorKind.TRANSIENT
            logger.warning(f"Push to device {device.id} ({device.deviceName}) failed: {kind.value}")
            return DeviceOutcome(deviceId=device.id, success=False, errorKind=kind)
        except Exception:
            logger.exception(f"Push to device {device.id} raised an unclassified error")
            return DeviceOutcome(deviceId=device.id, success=False, errorKind=ErrorKind.TRANSIENT)

        logger.debug(f"Push sent to device {device.id} ({device.deviceName})")
        return DeviceOutcome(deviceId=device.id, success=True)
