"""MongoDB storage of domain records."""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

import pymongo
from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient, UpdateOne
from pymongo.errors import PyMongoError

from catchall.models import DomainInfo, DomainStatus, EventType
from catchall.repository import EventBatch

_log = logging.getLogger(__name__)

COLLECTION_NAME = "domains"
_CONNECT_TIMEOUT_MS = 30_000
_OPERATION_TIMEOUT = 5.0
_BATCH_TIMEOUT = 10.0
_LEGACY_INDEXES = ("status_index", "status_regular_index", "updated_at_index")
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _status(raw: Any) -> DomainStatus:
    try:
        return DomainStatus(raw)
    except ValueError:
        return DomainStatus.UNKNOWN


def _timestamp(raw: Any) -> datetime:
    if not isinstance(raw, datetime):
        return _ZERO_TIME
    if raw.tzinfo is None:
        return raw.replace(tzinfo=timezone.utc)
    return raw


def _decode(doc: Mapping[str, Any]) -> DomainInfo:
    return DomainInfo(
        name=str(doc["_id"]),
        delivered_count=int(doc.get("delivered_count", 0)),
        bounced_count=int(doc.get("bounced_count", 0)),
        status=_status(doc.get("status")),
        updated_at=_timestamp(doc.get("updated_at")),
    )


def _counter_field(event_type: EventType) -> Optional[str]:
    if event_type == EventType.DELIVERED:
        return "delivered_count"
    if event_type == EventType.BOUNCED:
        return "bounced_count"
    return None


def _ensure_indexes(collection: Any) -> None:
    """Replace older index names with the current ones; failures only warn."""
    for name in _LEGACY_INDEXES:
        try:
            collection.drop_index(name)
        except PyMongoError:
            pass
    try:
        collection.create_indexes(
            [
                IndexModel([("status", ASCENDING)], name="status_index_v2"),
                IndexModel([("updated_at", DESCENDING)], name="updated_at_index_v2"),
            ]
        )
    except PyMongoError as exc:
        _log.warning("Failed to create indexes: %s. Continuing anyway.", exc)


class MongoDomainRepository:
    """Keeps one document per domain, keyed by the domain name."""

    def __init__(self, collection: Any, client: Optional[Any] = None) -> None:
        self._collection = collection
        self._client = client

    @classmethod
    def connect(cls, connection_string: str, db_name: str) -> "MongoDomainRepository":
        """Connect, check the server answers and prepare the collection's indexes."""
        client = MongoClient(
            connection_string,
            connectTimeoutMS=_CONNECT_TIMEOUT_MS,
            serverSelectionTimeoutMS=_CONNECT_TIMEOUT_MS,
            tz_aware=True,
        )
        try:
            client.admin.command("ping")
        except Exception:
            client.close()
            raise
        collection = client[db_name][COLLECTION_NAME]
        _ensure_indexes(collection)
        return cls(collection, client)

    def __enter__(self) -> "MongoDomainRepository":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_domain_info(self, domain_name: str) -> DomainInfo:
        """Return the stored record, or a default record for an unknown domain."""
        with pymongo.timeout(_OPERATION_TIMEOUT):
            doc = self._collection.find_one({"_id": domain_name})
        if doc is None:
            return DomainInfo(name=domain_name, updated_at=_now())
        return _decode(doc)

    def increment_event_count(self, domain_name: str, event_type: EventType) -> None:
        """Add one event of the given type, creating the document if needed."""
        increments = {}
        counter = _counter_field(event_type)
        if counter is not None:
            increments[counter] = 1
        update = {"$inc": increments, "$set": {"updated_at": _now()}}
        with pymongo.timeout(_OPERATION_TIMEOUT):
            self._collection.update_one({"_id": domain_name}, update, upsert=True)

    def update_domain_status(self, domain_name: str, status: DomainStatus) -> None:
        """Store a new status, creating the document if needed."""
        update = {"$set": {"status": DomainStatus(status).value, "updated_at": _now()}}
        with pymongo.timeout(_OPERATION_TIMEOUT):
            self._collection.update_one({"_id": domain_name}, update, upsert=True)

    def close(self) -> None:
        """Close the connection to the server, if this repository owns one."""
        if self._client is not None:
            self._client.close()

    def get_domain_stats(self) -> dict[str, int]:
        """Count documents by status, with the overall total."""
        pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
        stats: dict[str, int] = {}
        with pymongo.timeout(_BATCH_TIMEOUT):
            for row in self._collection.aggregate(pipeline):
                key = row.get("_id")
                stats["" if key is None else str(key)] = int(row.get("count", 0))
            for status in (DomainStatus.CATCH_ALL, DomainStatus.NOT_CATCH_ALL, DomainStatus.UNKNOWN):
                stats.setdefault(status.value, 0)
            stats["total"] = int(self._collection.count_documents({}))
        return stats

    def increment_event_count_batch(self, events: Sequence[EventBatch]) -> None:
        """Apply every batch entry's count in one unordered bulk write."""
        if not events:
            return
        now = _now()
        operations = [
            UpdateOne(
                {"_id": event.domain_name},
                {
                    "$inc": {
                        "bounced_count"
                        if event.event_type == EventType.BOUNCED
                        else "delivered_count": event.count
                    },
                    "$set": {"updated_at": now},
                },
                upsert=True,
            )
            for event in events
        ]
        with pymongo.timeout(_BATCH_TIMEOUT):
            self._collection.bulk_write(operations, ordered=False)

    def update_status_batch(self, updates: Mapping[str, DomainStatus]) -> None:
        """Store several statuses in one unordered bulk write."""
        if not updates:
            return
        now = _now()
        operations = [
            UpdateOne(
                {"_id": domain_name},
                {"$set": {"status": DomainStatus(status).value, "updated_at": now}},
                upsert=True,
            )
            for domain_name, status in updates.items()
        ]
        with pymongo.timeout(_BATCH_TIMEOUT):
            self._collection.bulk_write(operations, ordered=False)

    def get_domains_status_batch(self, domain_names: Sequence[str]) -> dict[str, DomainInfo]:
        """Return a record for every requested domain, defaults for unknown ones."""
        if not domain_names:
            return {}
        result: dict[str, DomainInfo] = {}
        with pymongo.timeout(_BATCH_TIMEOUT):
            for doc in self._collection.find({"_id": {"$in": list(domain_names)}}):
                info = _decode(doc)
                result[info.name] = info
        now = _now()
        for name in domain_names:
            if name not in result:
                result[name] = DomainInfo(name=name, updated_at=now)
        return result