"""Conversion between browser push subscriptions and stored credentials."""

from typing import Any, Dict, Mapping, Union

from pydantic import BaseModel, ValidationError

from .errors import MalformedSubscription
from .models import Subscription, SubscriptionKeys


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedSubscription(f"Subscription {field} must be a non-empty string")
    return value


def decode(raw: Union[Mapping[str, Any], BaseModel]) -> Subscription:
    """
    Validate a raw PushSubscription object and build the stored credential.

    Args:
        raw: Mapping (or model) shaped like the browser's PushSubscription JSON

    Returns:
        Subscription: The stored representation

    Raises:
        MalformedSubscription: If the endpoint or either key is missing
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, Mapping):
        raise MalformedSubscription("Subscription must be an object")

    endpoint = _require_text(raw.get("endpoint"), "endpoint")

    keys = raw.get("keys")
    if not isinstance(keys, Mapping):
        raise MalformedSubscription("Subscription keys are missing")

    expiration = raw.get("expirationTime")
    if expiration is not None and not isinstance(expiration, (int, float)):
        raise MalformedSubscription("Subscription expirationTime must be a number")

    p256dh = _require_text(keys.get("p256dh"), "p256dh key")
    auth = _require_text(keys.get("auth"), "auth key")

    try:
        return Subscription(
            endpoint=endpoint,
            expirationTime=expiration,
            keys=SubscriptionKeys(p256dh=p256dh, auth=auth),
        )
    except ValidationError as e:
        raise MalformedSubscription(f"Subscription rejected: {e.error_count()} invalid field(s)") from e


def encode(subscription: Subscription) -> Dict[str, Any]:
    """Build the subscription_info mapping handed to the push transport."""
    return {
        "endpoint": subscription.endpoint,
        "keys": {
            "p256dh": subscription.keys.p256dh,
            "auth": subscription.keys.auth,
        },
    }
