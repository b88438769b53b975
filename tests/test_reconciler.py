"""Tests for applying delivery outcomes to stored devices."""

from datetime import datetime, timezone

from app.errors import StorageUnavailable
from app.models import DeviceOutcome, ErrorKind
from app.reconciler import FailureReconciler
from conftest import make_device


class TestReconcile:
    async def test_success_refreshes_last_used(self, registry):
        device = await registry.upsert(make_device(lastUsed=datetime(2020, 1, 1, tzinfo=timezone.utc)))

        await FailureReconciler(registry).reconcile(device, DeviceOutcome(deviceId=device.id, success=True))

        stored = await registry.find_by_id(device.id)
        assert stored.lastUsed.year > 2020
        assert stored.isActive is True

    async def test_permanent_failure_deactivates(self, registry):
        device = await registry.upsert(make_device())

        await FailureReconciler(registry).reconcile(
            device, DeviceOutcome(deviceId=device.id, success=False, errorKind=ErrorKind.PERMANENT),
        )

        stored = await registry.find_by_id(device.id)
        assert stored.isActive is False
        assert stored.id == device.id

    async def test_transient_failure_changes_nothing(self, registry):
        device = await registry.upsert(make_device())

        await FailureReconciler(registry).reconcile(
            device, DeviceOutcome(deviceId=device.id, success=False, errorKind=ErrorKind.TRANSIENT),
        )

        assert await registry.find_by_id(device.id) == device

    async def test_storage_errors_are_swallowed(self, registry):
        device = await registry.upsert(make_device())

        async def broken_set_active(device_id, is_active):
            raise StorageUnavailable("write failed")

        registry.set_active = broken_set_active

        await FailureReconciler(registry).reconcile(
            device, DeviceOutcome(deviceId=device.id, success=False, errorKind=ErrorKind.PERMANENT),
        )

    async def test_unexpected_errors_are_swallowed(self, registry):
        device = await registry.upsert(make_device())

        async def broken_mark_used(device_id, when):
            raise RuntimeError("driver bug")

        registry.mark_used = broken_mark_used

        await FailureReconciler(registry).reconcile(device, DeviceOutcome(deviceId=device.id, success=True))
