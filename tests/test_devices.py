"""Tests for device registration on behalf of an owner."""

import pytest

from app.devices import DeviceManager, detect_device_type
from app.errors import MalformedSubscription, NotFound, Unauthorized
from app.models import DeviceType
from conftest import make_subscription

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"
ANDROID = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0 Mobile Safari/537.36"
TABLET = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Safari/604.1"
DESKTOP = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36"


class TestDetectDeviceType:
    @pytest.mark.parametrize("user_agent,expected", [
        (IPHONE, DeviceType.MOBILE),
        (ANDROID, DeviceType.MOBILE),
        (TABLET, DeviceType.TABLET),
        (DESKTOP, DeviceType.DESKTOP),
        ("", DeviceType.DESKTOP),
        (None, DeviceType.DESKTOP),
    ])
    def test_user_agents(self, user_agent, expected):
        assert detect_device_type(user_agent) == expected


class TestRegister:
    async def test_creates_active_device(self, registry):
        manager = DeviceManager(registry)

        device, created = await manager.register("user-a", make_subscription(), "Phone", user_agent=IPHONE)

        assert created is True
        assert device.ownerId == "user-a"
        assert device.deviceType == DeviceType.MOBILE
        assert device.isActive is True
        assert device.registeredAt == device.lastUsed

    async def test_explicit_device_type_wins(self, registry):
        manager = DeviceManager(registry)

        device, _ = await manager.register(
            "user-a", make_subscription(), "Tablet", device_type=DeviceType.TABLET, user_agent=DESKTOP,
        )

        assert device.deviceType == DeviceType.TABLET

    async def test_reregistration_updates_existing_record(self, registry):
        manager = DeviceManager(registry)
        subscription = make_subscription("https://push.example/reused")
        first, _ = await manager.register("user-a", subscription, "Laptop", user_agent=DESKTOP)
        await registry.set_active(first.id, False)

        second, created = await manager.register("user-a", subscription, "Work laptop", user_agent=TABLET)

        assert created is False
        assert second.id == first.id
        assert second.deviceName == "Work laptop"
        assert second.deviceType == DeviceType.TABLET
        assert second.isActive is True
        assert second.lastUsed >= first.lastUsed
        assert second.registeredAt == first.registeredAt
        assert len(await manager.list("user-a")) == 1

    async def test_endpoint_of_another_owner_is_refused(self, registry):
        manager = DeviceManager(registry)
        subscription = make_subscription("https://push.example/shared-browser")
        original, _ = await manager.register("user-a", subscription, "Family PC")

        with pytest.raises(Unauthorized):
            await manager.register("user-b", subscription, "My PC")

        stored = await registry.find_by_id(original.id)
        assert stored.ownerId == "user-a"
        assert stored.deviceName == "Family PC"

    async def test_malformed_subscription_is_rejected(self, registry):
        manager = DeviceManager(registry)

        with pytest.raises(MalformedSubscription):
            await manager.register("user-a", {"endpoint": "https://push.example/1"}, "Phone")

        assert await manager.list("user-a") == []


class TestUnregister:
    async def test_owner_unregisters(self, registry):
        manager = DeviceManager(registry)
        device, _ = await manager.register("user-a", make_subscription(), "Phone")

        await manager.unregister(device.id, "user-a")

        assert await manager.list("user-a") == []

    async def test_other_owner_gets_not_found(self, registry):
        manager = DeviceManager(registry)
        device, _ = await manager.register("user-a", make_subscription(), "Phone")

        with pytest.raises(NotFound):
            await manager.unregister(device.id, "user-b")

        assert [d.id for d in await manager.list("user-a")] == [device.id]
