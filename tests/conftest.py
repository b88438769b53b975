import os

# Settings are read at import time
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DATABASE", "notifications_test")
os.environ.setdefault("KEYCLOAK_SERVER_URL", "http://keycloak.local")
os.environ.setdefault("KEYCLOAK_REALM", "test")
os.environ.setdefault("KEYCLOAK_CLIENT_ID", "notification-api")
os.environ.setdefault("VAPID_PUBLIC_KEY", "BPublicKeyForTests")
os.environ.setdefault("VAPID_PRIVATE_KEY", "private-key-for-tests")

import asyncio
import itertools

import pytest

from app.errors import TransportError
from app.models import DeviceRegistration, DeviceType
from app.registry import InMemoryDeviceRegistry

_counter = itertools.count(1)


def make_subscription(endpoint=None, p256dh="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", auth="tBHItJI5svbpez7KI4CCXg"):
    return {
        "endpoint": endpoint or f"https://fcm.googleapis.com/fcm/send/device-{next(_counter)}",
        "expirationTime": None,
        "keys": {"p256dh": p256dh, "auth": auth},
    }


def make_device(owner_id="user-a", name="Laptop", endpoint=None, is_active=True, **overrides):
    return DeviceRegistration(
        ownerId=owner_id,
        deviceName=name,
        deviceType=overrides.pop("device_type", DeviceType.DESKTOP),
        subscription=overrides.pop("subscription", None) or make_subscription(endpoint),
        isActive=is_active,
        **overrides,
    )


class CountingRegistry(InMemoryDeviceRegistry):
    """In-memory registry that records how often dispatch reads it."""

    def __init__(self):
        super().__init__()
        self.active_reads = 0

    async def list_active_by_owner(self, owner_id):
        self.active_reads += 1
        return await super().list_active_by_owner(owner_id)


class FakeTransport:
    """Transport whose result per endpoint is scripted by the test."""

    is_configured = True

    def __init__(self, failures=None, delay=0.0):
        self.failures = failures or {}
        self.delay = delay
        self.sent = []

    async def send(self, subscription, payload):
        if self.delay:
            await asyncio.sleep(self.delay)
        failure = self.failures.get(subscription.endpoint)
        if failure is not None:
            raise failure
        self.sent.append((subscription.endpoint, payload))


def gone():
    return TransportError("410 Gone", permanent=True, status_code=410)


def unavailable():
    return TransportError("503 Service Unavailable", permanent=False, status_code=503)


@pytest.fixture()
def registry():
    return CountingRegistry()


@pytest.fixture()
def transport():
    return FakeTransport()
