"""Caller-facing device operations: register, list, unregister."""

import logging
import re
from typing import Any, List, Mapping, Optional

from . import codec
from .errors import Unauthorized
from .models import DeviceRegistration, DeviceType, utcnow
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)

_MOBILE_UA = re.compile(r"Mobi|Android|iPhone|iPod", re.IGNORECASE)
_TABLET_UA = re.compile(r"Tablet|iPad", re.IGNORECASE)


def detect_device_type(user_agent: Optional[str]) -> DeviceType:
    """Guess the device class from a User-Agent header."""
    if not user_agent:
        return DeviceType.DESKTOP
    if _MOBILE_UA.search(user_agent):
        return DeviceType.MOBILE
    if _TABLET_UA.search(user_agent):
        return DeviceType.TABLET
    return DeviceType.DESKTOP


class DeviceManager:
    """Registry operations performed on behalf of an authenticated owner."""

    def __init__(self, registry: DeviceRegistry):
        self._registry = registry

    async def register(
        self,
        owner_id: str,
        subscription: Mapping[str, Any],
        device_name: str,
        device_type: Optional[DeviceType] = None,
        user_agent: Optional[str] = None,
    ) -> tuple[DeviceRegistration, bool]:
        """
        Register a device or refresh the registration sharing its endpoint.

        Re-registering reactivates the device and updates its name, type and
        keys. An endpoint registered by another identity is never taken over.

        Returns:
            Tuple of (stored registration, created)

        Raises:
            MalformedSubscription: If the subscription cannot be decoded
            Unauthorized: If the endpoint belongs to another owner
        """
        decoded = codec.decode(subscription)
        existing = await self._registry.find_by_endpoint(decoded.endpoint)

        if existing is not None and existing.ownerId != owner_id:
            logger.warning(
                f"Refusing to re-register endpoint of {existing.ownerId} for {owner_id}: "
                f"{decoded.endpoint[:32]}..."
            )
            raise Unauthorized("Subscription endpoint is registered to another user")

        now = utcnow()
        record = DeviceRegistration(
            ownerId=owner_id,
            deviceName=device_name,
            deviceType=device_type or detect_device_type(user_agent),
            subscription=decoded.model_dump(),
            isActive=True,
            registeredAt=now,
            lastUsed=now,
        )
        stored = await self._registry.upsert(record)

        if existing is None:
            logger.info(f"New device registered: id={stored.id}, owner={owner_id}, type={stored.deviceType.value}")
        else:
            logger.info(f"Device registration refreshed: id={stored.id}, owner={owner_id}")
        return stored, existing is None

    async def list(self, owner_id: str) -> List[DeviceRegistration]:
        return await self._registry.list_by_owner(owner_id)

    async def unregister(self, device_id: str, owner_id: str) -> None:
        await self._registry.delete_by_id(device_id, owner_id)
        logger.info(f"Device unregistered: id={device_id}, owner={owner_id}")
