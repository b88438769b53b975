"""Data models for the Notification Dispatch Service."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class SubscriptionKeys(BaseModel):
    """Key bundle of a push subscription."""
    p256dh: str = Field(..., description="Client public key used for payload encryption")
    auth: str = Field(..., description="Authentication secret")


class Subscription(BaseModel):
    """Stored push subscription credential."""
    endpoint: str = Field(..., description="Push service endpoint URL, unique per device")
    expirationTime: Optional[float] = Field(None, description="Expiry reported by the browser, if any")
    keys: SubscriptionKeys


class DeviceRegistration(BaseModel):
    """One push subscription bound to one owning identity."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    ownerId: str = Field(..., description="Identity owning the device")
    deviceName: str = Field(..., description="User supplied device label")
    deviceType: DeviceType = DeviceType.DESKTOP
    subscription: Dict[str, Any] = Field(..., description="Stored subscription, decoded on use")
    isActive: bool = True
    registeredAt: datetime = Field(default_factory=utcnow)
    lastUsed: datetime = Field(default_factory=utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "3f1c2a4e-8a51-4c44-9a55-0b7f3b0f6f10",
                "ownerId": "user123",
                "deviceName": "Work laptop",
                "deviceType": "desktop",
                "subscription": {
                    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
                    "expirationTime": None,
                    "keys": {"p256dh": "BNcRd...", "auth": "tBHI..."}
                },
                "isActive": True,
                "registeredAt": "2024-01-01T00:00:00Z",
                "lastUsed": "2024-01-01T00:00:00Z"
            }
        }


class NotificationPayload(BaseModel):
    """Notification intent accepted by the dispatch engine."""
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1, validation_alias=AliasChoices("body", "message"))
    url: Optional[str] = None
    icon: Optional[str] = None
    tag: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    class Config:
        extra = "forbid"
        str_strip_whitespace = True


class ErrorKind(str, Enum):
    PERMANENT = "permanent"
    TRANSIENT = "transient"
    MALFORMED_SUBSCRIPTION = "malformed_subscription"


class DeviceOutcome(BaseModel):
    """Result of one send attempt."""
    deviceId: str
    success: bool
    errorKind: Optional[ErrorKind] = None


class DispatchResult(BaseModel):
    """Aggregated result of one dispatch."""
    sent: int = 0
    total: int = 0
    outcomes: List[DeviceOutcome] = Field(default_factory=list)


class DeviceRegisterRequest(BaseModel):
    """Request to register a device for push notifications."""
    deviceName: str = Field(..., min_length=1, description="Device label")
    deviceType: Optional[DeviceType] = Field(None, description="Detected from User-Agent when omitted")
    subscription: Dict[str, Any] = Field(
        ...,
        validation_alias=AliasChoices("subscription", "pushSubscription"),
        description="PushSubscription object as returned by the browser",
    )

    class Config:
        json_schema_extra = {
            "example": {
                "deviceName": "Work laptop",
                "deviceType": "desktop",
                "subscription": {
                    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
                    "keys": {"p256dh": "BNcRd...", "auth": "tBHI..."}
                }
            }
        }


class DeviceUnregisterResponse(BaseModel):
    """Response after unregistering a device."""
    success: bool
    message: str


class DispatchResponse(BaseModel):
    """Response for a push dispatch request."""
    success: bool = Field(..., description="True when the dispatch ran to completion")
    message: str
    sent: int = Field(..., description="Devices notified")
    total: int = Field(..., description="Active devices targeted")
    outcomes: List[DeviceOutcome] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "2 of 3 devices notified",
                "sent": 2,
                "total": 3,
                "outcomes": [
                    {"deviceId": "3f1c2a4e-8a51-4c44-9a55-0b7f3b0f6f10", "success": True, "errorKind": None}
                ]
            }
        }


class VapidKeyResponse(BaseModel):
    """Public VAPID key clients pass to PushManager.subscribe."""
    publicKey: str
