"""Applies per-device delivery outcomes back to the device registry."""

import logging

from .errors import StorageUnavailable
from .models import DeviceOutcome, DeviceRegistration, ErrorKind, utcnow
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


class FailureReconciler:
    """
    Keeps stored device state in line with what the push service reports.

    Successful sends refresh lastUsed; permanent failures deactivate the
    device; transient failures leave it untouched for the next dispatch.
    Never raises.
    """

    def __init__(self, registry: DeviceRegistry):
        self._registry = registry

    async def reconcile(self, device: DeviceRegistration, outcome: DeviceOutcome) -> None:
        try:
            if outcome.success:
                await self._registry.mark_used(device.id, utcnow())
            elif outcome.errorKind == ErrorKind.PERMANENT:
                logger.info(f"Deactivating device {device.id} of {device.ownerId}: subscription gone")
                await self._registry.set_active(device.id, False)
        except StorageUnavailable as e:
            logger.error(f"Could not reconcile device {device.id}: {e}")
        except Exception:
            logger.exception(f"Unexpected error reconciling device {device.id}")
