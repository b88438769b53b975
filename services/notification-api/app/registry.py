"""Device registry - persistent store of push device registrations."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .errors import NotFound, StorageUnavailable
from .models import DeviceRegistration

logger = logging.getLogger(__name__)


class DeviceRegistry(ABC):
    """Storage contract shared by every registry backend."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        """All registrations (active and inactive) for an owner."""

    @abstractmethod
    async def list_active_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        """Registrations eligible for dispatch."""

    @abstractmethod
    async def find_by_endpoint(self, endpoint: str) -> Optional[DeviceRegistration]:
        ...

    @abstractmethod
    async def find_by_id(self, device_id: str) -> Optional[DeviceRegistration]:
        ...

    @abstractmethod
    async def upsert(self, record: DeviceRegistration) -> DeviceRegistration:
        """
        Insert a registration, or update the one sharing its endpoint.

        On update only deviceName, deviceType, isActive, lastUsed and the
        subscription keys change; id, ownerId and registeredAt are preserved.
        On insert the record is stored as given, so its id and registeredAt
        are the fresh values DeviceRegistration generates when built.

        Returns:
            DeviceRegistration: The stored record
        """

    @abstractmethod
    async def set_active(self, device_id: str, is_active: bool) -> None:
        ...

    @abstractmethod
    async def mark_used(self, device_id: str, when: datetime) -> None:
        ...

    @abstractmethod
    async def delete_by_id(self, device_id: str, owner_id: str) -> None:
        """
        Delete a registration owned by owner_id.

        Raises:
            NotFound: If the record does not exist or belongs to someone else
        """

    async def ensure_indexes(self) -> None:
        pass

    async def ping(self) -> None:
        pass


def _merge(existing: DeviceRegistration, record: DeviceRegistration) -> DeviceRegistration:
    return existing.model_copy(update={
        "deviceName": record.deviceName,
        "deviceType": record.deviceType,
        "isActive": record.isActive,
        "lastUsed": record.lastUsed,
        "subscription": record.subscription,
    })


class InMemoryDeviceRegistry(DeviceRegistry):
    """Process-local registry for development and tests."""

    def __init__(self):
        self._records: Dict[str, DeviceRegistration] = {}
        self._by_endpoint: Dict[str, str] = {}

    def _copy(self, record: DeviceRegistration) -> DeviceRegistration:
        return record.model_copy(deep=True)

    async def list_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        return [self._copy(r) for r in self._records.values() if r.ownerId == owner_id]

    async def list_active_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        return [
            self._copy(r) for r in self._records.values()
            if r.ownerId == owner_id and r.isActive
        ]

    async def find_by_endpoint(self, endpoint: str) -> Optional[DeviceRegistration]:
        device_id = self._by_endpoint.get(endpoint)
        if device_id is None:
            return None
        return self._copy(self._records[device_id])

    async def find_by_id(self, device_id: str) -> Optional[DeviceRegistration]:
        record = self._records.get(device_id)
        return self._copy(record) if record else None

    async def upsert(self, record: DeviceRegistration) -> DeviceRegistration:
        endpoint = record.subscription.get("endpoint")
        existing_id = self._by_endpoint.get(endpoint)

        if existing_id is not None:
            stored = self._copy(_merge(self._records[existing_id], record))
        else:
            stored = self._copy(record)
            self._by_endpoint[endpoint] = stored.id

        self._records[stored.id] = stored
        return self._copy(stored)

    async def set_active(self, device_id: str, is_active: bool) -> None:
        record = self._records.get(device_id)
        if record is not None:
            self._records[device_id] = record.model_copy(update={"isActive": is_active})

    async def mark_used(self, device_id: str, when: datetime) -> None:
        record = self._records.get(device_id)
        if record is not None:
            self._records[device_id] = record.model_copy(update={"lastUsed": when})

    async def delete_by_id(self, device_id: str, owner_id: str) -> None:
        record = self._records.get(device_id)
        if record is None or record.ownerId != owner_id:
            raise NotFound(f"Device {device_id} not found")

        del self._records[device_id]
        self._by_endpoint.pop(record.subscription.get("endpoint"), None)


class MongoDeviceRegistry(DeviceRegistry):
    """Registry backed by a MongoDB collection."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self._collection = collection

    @staticmethod
    def _to_document(record: DeviceRegistration) -> Dict[str, Any]:
        document = record.model_dump()
        document["deviceType"] = record.deviceType.value
        return document

    @staticmethod
    def _from_document(document: Dict[str, Any]) -> DeviceRegistration:
        document = dict(document)
        document.pop("_id", None)
        return DeviceRegistration.model_validate(document)

    async def _find(self, query: Dict[str, Any]) -> List[DeviceRegistration]:
        try:
            cursor = self._collection.find(query).sort("registeredAt", ASCENDING)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Failed to query device registrations: {e}")
            raise StorageUnavailable(str(e)) from e
        return [self._from_document(d) for d in documents]

    async def _find_one(self, query: Dict[str, Any]) -> Optional[DeviceRegistration]:
        try:
            document = await self._collection.find_one(query)
        except PyMongoError as e:
            logger.error(f"Failed to query device registration: {e}")
            raise StorageUnavailable(str(e)) from e
        return self._from_document(document) if document else None

    async def ensure_indexes(self) -> None:
        try:
            await self._collection.create_index([("id", ASCENDING)], unique=True)
            await self._collection.create_index([("subscription.endpoint", ASCENDING)], unique=True)
            await self._collection.create_index([("ownerId", ASCENDING)])
        except PyMongoError as e:
            raise StorageUnavailable(str(e)) from e
        logger.info("Device registry indexes ensured")

    async def ping(self) -> None:
        try:
            await self._collection.database.command("ping")
        except PyMongoError as e:
            raise StorageUnavailable(str(e)) from e

    async def list_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        return await self._find({"ownerId": owner_id})

    async def list_active_by_owner(self, owner_id: str) -> List[DeviceRegistration]:
        return await self._find({"ownerId": owner_id, "isActive": True})

    async def find_by_endpoint(self, endpoint: str) -> Optional[DeviceRegistration]:
        return await self._find_one({"subscription.endpoint": endpoint})

    async def find_by_id(self, device_id: str) -> Optional[DeviceRegistration]:
        return await self._find_one({"id": device_id})

    async def upsert(self, record: DeviceRegistration) -> DeviceRegistration:
        endpoint = record.subscription.get("endpoint") or ""
        try:
            return await self._upsert_once(record)
        except DuplicateKeyError:
            # Another request inserted the same endpoint in between
            logger.debug(f"Concurrent insert for {endpoint[:32]}..., retrying as update")

        try:
            return await self._upsert_once(record)
        except DuplicateKeyError as e:
            raise StorageUnavailable(f"Conflicting registration for endpoint {endpoint[:32]}...") from e

    async def _upsert_once(self, record: DeviceRegistration) -> DeviceRegistration:
        endpoint = record.subscription.get("endpoint")
        existing = await self.find_by_endpoint(endpoint)

        try:
            if existing is not None:
                stored = _merge(existing, record)
                await self._collection.update_one(
                    {"id": existing.id},
                    {"$set": {
                        "deviceName": stored.deviceName,
                        "deviceType": stored.deviceType.value,
                        "isActive": stored.isActive,
                        "lastUsed": stored.lastUsed,
                        "subscription": stored.subscription,
                    }},
                )
                logger.debug(f"Device registration updated: id={stored.id}")
                return stored

            await self._collection.insert_one(self._to_document(record))
            logger.debug(f"Device registration inserted: id={record.id}")
            return record

        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            logger.error(f"Failed to upsert device registration: {e}")
            raise StorageUnavailable(str(e)) from e

    async def _update_fields(self, device_id: str, fields: Dict[str, Any]) -> None:
        try:
            result = await self._collection.update_one({"id": device_id}, {"$set": fields})
        except PyMongoError as e:
            logger.error(f"Failed to update device {device_id}: {e}")
            raise StorageUnavailable(str(e)) from e

        if result.matched_count == 0:
            logger.debug(f"Device {device_id} no longer exists, update skipped")

    async def set_active(self, device_id: str, is_active: bool) -> None:
        await self._update_fields(device_id, {"isActive": is_active})

    async def mark_used(self, device_id: str, when: datetime) -> None:
        await self._update_fields(device_id, {"lastUsed": when})

    async def delete_by_id(self, device_id: str, owner_id: str) -> None:
        try:
            result = await self._collection.delete_one({"id": device_id, "ownerId": owner_id})
        except PyMongoError as e:
            logger.error(f"Failed to delete device {device_id}: {e}")
            raise StorageUnavailable(str(e)) from e

        if result.deleted_count == 0:
            raise NotFound(f"Device {device_id} not found")
