"""Web Push transport using pywebpush."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Protocol

from pywebpush import WebPushException, webpush

from . import codec
from .errors import TransportError
from .models import Subscription

logger = logging.getLogger(__name__)

# Push services answer 404/410 once a subscription has expired or been revoked
PERMANENT_STATUS_CODES = frozenset({404, 410})
RATE_LIMITED_STATUS = 429


def classify_status(status_code: Optional[int]) -> bool:
    """Return True if a push service status means the subscription is gone."""
    return status_code in PERMANENT_STATUS_CODES


class PushTransport(Protocol):
    """Anything able to deliver a payload to one subscription."""

    async def send(self, subscription: Subscription, payload: Dict[str, Any]) -> None:
        ...


class WebPushTransport:
    """Sends encrypted Web Push messages signed with the service VAPID key."""

    def __init__(self, vapid_private_key: str, vapid_subject: str, ttl: int = 300, timeout: float = 10.0):
        self._vapid_private_key = vapid_private_key
        self._vapid_subject = vapid_subject
        self._ttl = ttl
        self._timeout = timeout

        if not self.is_configured:
            logger.warning("VAPID private key is not set - push notifications will not be delivered")

    @property
    def is_configured(self) -> bool:
        return bool(self._vapid_private_key)

    def _send_sync(self, subscription_info: Dict[str, Any], data: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=self._vapid_private_key,
            vapid_claims={"sub": self._vapid_subject},
            ttl=self._ttl,
            timeout=self._timeout,
        )

    async def send(self, subscription: Subscription, payload: Dict[str, Any]) -> None:
        """
        Deliver one message to one subscription.

        Args:
            subscription: Decoded subscription of the target device
            payload: JSON-serializable message

        Raises:
            TransportError: permanent for 404/410, transient otherwise
        """
        if not self.is_configured:
            raise TransportError("Push transport is not configured", permanent=False)

        endpoint = subscription.endpoint[:48]
        try:
            await asyncio.to_thread(self._send_sync, codec.encode(subscription), json.dumps(payload))
        except WebPushException as e:
            status_code = getattr(e.response, "status_code", None)
            if classify_status(status_code):
                logger.info(f"Subscription gone (status {status_code}): {endpoint}...")
                raise TransportError(str(e), permanent=True, status_code=status_code) from e
            if status_code == RATE_LIMITED_STATUS:
                logger.warning(f"Push service rate limited delivery to {endpoint}...")
            else:
                logger.warning(f"Push delivery failed (status {status_code}): {endpoint}...")
            raise TransportError(str(e), permanent=False, status_code=status_code) from e
        except Exception as e:
            logger.error(f"Unexpected push transport error for {endpoint}...: {e}")
            raise TransportError(str(e), permanent=False) from e

        logger.debug(f"Push delivered to {endpoint}...")
