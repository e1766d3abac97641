"""
Entity store over MongoDB.

Each collection is named after the lowercase entity (User -> "user",
Room -> "room", ...). Documents carry created_at/updated_at timestamps and an
integer `version` that modify() uses for optimistic read-modify-write.
"""

import time
from datetime import date, datetime, timezone
from functools import lru_cache, wraps
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from config import settings
from exceptions import ConflictError, NotFoundError, StoreUnavailable, ValidationError
from logging_config import get_logger

logger = get_logger("database")

Mutation = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: Any) -> Optional[ObjectId]:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        return None


def serialize_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _bson_safe(data: Dict[str, Any]) -> Dict[str, Any]:
    # BSON has no plain date type; store ISO strings so they sort lexically
    out = {}
    for k, v in data.items():
        if isinstance(v, date) and not isinstance(v, datetime):
            v = v.isoformat()
        out[k] = v
    return out


def retry_with_backoff(max_retries: Optional[int] = None, base_delay: Optional[float] = None):
    """
    Retry a store call on connection failures with exponential backoff.

    Defaults come from settings at call time. When every attempt fails the
    last pymongo error is wrapped in StoreUnavailable.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max(1, max_retries or settings.STORE_RETRY_ATTEMPTS)
            delay_base = settings.STORE_RETRY_BASE_DELAY if base_delay is None else base_delay
            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except ConnectionFailure as e:
                    if attempt < attempts - 1:
                        delay = min(delay_base * (2 ** attempt), settings.STORE_RETRY_MAX_DELAY)
                        logger.warning(f"[Store-Retry] {func.__name__} attempt {attempt + 1}/{attempts} failed: {e}. Retrying in {delay:.1f}s...")
                        time.sleep(delay)
                    else:
                        logger.error(f"[Store-Retry] {func.__name__}: all {attempts} attempts failed: {e}")
                        raise StoreUnavailable(f"Database not available: {str(e)[:80]}") from e
        return wrapper
    return decorator


class DocumentStore:
    """CRUD plus conditional updates against a pymongo Database"""

    def __init__(self, db: Database):
        self.db = db

    # ---------------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------------
    @retry_with_backoff()
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return serialize_id(self.db[collection].find_one({"_id": oid}))

    @retry_with_backoff()
    def query(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(filter or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return [serialize_id(d) for d in cursor]

    @retry_with_backoff()
    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return self.db[collection].count_documents(filter or {})

    # ---------------------------------------------------------------------
    # Writes
    # ---------------------------------------------------------------------
    def create(self, collection: str, data: Any) -> Dict[str, Any]:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True)
        doc = _bson_safe(dict(data))
        doc.pop("id", None)
        now = utcnow()
        if not doc.get("created_at"):
            doc["created_at"] = now
        doc["updated_at"] = now
        doc["version"] = 0
        # id chosen up front so a retried insert can tell whether the last try landed
        doc["_id"] = ObjectId()
        try:
            self._insert(collection, doc, [])
        except DuplicateKeyError as e:
            raise ValidationError(f"Duplicate {collection}: {str(e)[:80]}")
        return serialize_id(doc)

    @retry_with_backoff()
    def _insert(self, collection: str, doc: Dict[str, Any], tries: List[int]) -> None:
        if tries and self.db[collection].find_one({"_id": doc["_id"]}, {"_id": 1}) is not None:
            return
        tries.append(1)
        self.db[collection].insert_one(dict(doc))

    @retry_with_backoff()
    def update(self, collection: str, doc_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Unconditional $set; returns the updated document or None if missing"""
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        changes = _bson_safe(patch)
        changes["updated_at"] = utcnow()
        try:
            doc = self.db[collection].find_one_and_update(
                {"_id": oid},
                {"$set": changes, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ValidationError(f"Duplicate {collection}: {str(e)[:80]}")
        return serialize_id(doc)

    @retry_with_backoff()
    def update_many(
        self,
        collection: str,
        filter: Dict[str, Any],
        patch: Optional[Dict[str, Any]] = None,
        add_to_set: Optional[Dict[str, Any]] = None,
    ) -> int:
        ops: Dict[str, Any] = {"$set": {**_bson_safe(patch or {}), "updated_at": utcnow()}}
        if add_to_set:
            ops["$addToSet"] = add_to_set
        result = self.db[collection].update_many(filter, ops)
        return result.modified_count

    @retry_with_backoff()
    def delete(self, collection: str, doc_id: str, guard: Optional[Dict[str, Any]] = None) -> bool:
        """Delete by id; `guard` adds conditions the document must still meet"""
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        result = self.db[collection].delete_one({"_id": oid, **(guard or {})})
        return result.deleted_count == 1

    def _write_if_version(self, collection: str, oid: ObjectId, version: Optional[int], changes: Dict[str, Any]):
        cond: Dict[str, Any] = {"_id": oid}
        cond["version"] = version if version is not None else {"$exists": False}
        return self.db[collection].find_one_and_update(
            cond,
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )

    def modify(
        self,
        collection: str,
        doc_id: str,
        mutate: Mutation,
        missing: Optional[Type[NotFoundError]] = None,
    ) -> Dict[str, Any]:
        """
        Atomic read-modify-write keyed on the document id.

        `mutate` receives the current document and returns a patch to $set, or
        None to leave it alone. It may raise to abort; nothing is written then.
        The write only lands if nobody bumped `version` since the read,
        otherwise the read and mutate are repeated.

        Each write carries a fresh `write_token`. When the connection drops
        mid-write the document is read back: if it holds our token the write
        landed and is returned as is, so `mutate` never runs twice for one
        applied change.
        """
        attempts = max(1, settings.OPTIMISTIC_RETRIES)
        oid = to_object_id(doc_id)
        lost: Optional[ConnectionFailure] = None
        for attempt in range(attempts):
            doc = self.get(collection, doc_id) if oid is not None else None
            if doc is None:
                if missing is not None:
                    raise missing(doc_id)
                raise NotFoundError(collection.title(), doc_id)

            patch = mutate(doc)
            if patch is None:
                return doc

            version = doc.get("version")
            changes = _bson_safe(patch)
            changes["updated_at"] = utcnow()
            changes["version"] = (version or 0) + 1
            changes["write_token"] = str(ObjectId())
            try:
                updated = self._write_if_version(collection, oid, version, changes)
            except DuplicateKeyError as e:
                raise ValidationError(f"Duplicate {collection}: {str(e)[:80]}")
            except ConnectionFailure as e:
                current = self.get(collection, doc_id)
                if current is not None and current.get("write_token") == changes["write_token"]:
                    logger.info(f"Write to {collection} {doc_id} landed before the connection dropped")
                    return current
                lost = e
                delay = min(settings.STORE_RETRY_BASE_DELAY * (2 ** attempt), settings.STORE_RETRY_MAX_DELAY)
                logger.warning(f"[Store-Retry] write to {collection} {doc_id} lost: {e}. Retrying in {delay:.1f}s ({attempt + 1}/{attempts})")
                time.sleep(delay)
                continue
            if updated is not None:
                return serialize_id(updated)
            lost = None
            logger.info(f"Version conflict on {collection} {doc_id}, retrying ({attempt + 1}/{attempts})")

        if lost is not None:
            raise StoreUnavailable(f"Database not available: {str(lost)[:80]}") from lost
        raise ConflictError(collection, doc_id, attempts)


def ensure_indexes(store: DocumentStore) -> None:
    store.db.user.create_index("email", unique=True)
    store.db.room.create_index("room_number", unique=True)
    store.db.fee.create_index([("student_id", ASCENDING), ("due_date", ASCENDING)])
    store.db.complaint.create_index([("status", ASCENDING), ("created_at", DESCENDING)])
    store.db.notification.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    store.db.notification.create_index([("role", ASCENDING), ("created_at", DESCENDING)])
    store.db.notification.create_index([("global", ASCENDING), ("created_at", DESCENDING)])


@lru_cache()
def get_database() -> Optional[Database]:
    if not settings.DATABASE_URL:
        return None
    client = MongoClient(
        settings.DATABASE_URL,
        serverSelectionTimeoutMS=settings.DATABASE_TIMEOUT_MS,
        tz_aware=True,
    )
    return client[settings.DATABASE_NAME]


def get_store() -> DocumentStore:
    db = get_database()
    if db is None:
        raise StoreUnavailable("Database not configured")
    return DocumentStore(db)
