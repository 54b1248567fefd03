"""
MongoDB access for the CareerCoach API.

The process owns exactly one `Database` handle, built at startup and handed to
request handlers through a FastAPI dependency. The underlying client is created
lazily on first use. Creation is single-flight: concurrent first callers block on
one lock and share the same client. A failed attempt is remembered for
`retry_after` seconds, so a broken configuration fails fast instead of dialing the
server on every request.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database as MongoDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger("careercoach.db")


class DatabaseUnavailable(Exception):
    """The document store is not configured or cannot be reached."""


def utcnow() -> datetime:
    # naive UTC, the same shape pymongo hands back on reads
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


INDEXES = [
    ("user", [("email", ASCENDING)], True),
    ("newslettersubscriber", [("email", ASCENDING)], True),
    ("corporateaccount", [("adminUserId", ASCENDING)], True),
    ("coach", [("rating", DESCENDING)], False),
    ("booking", [("coachId", ASCENDING), ("dateTime", ASCENDING)], False),
    ("booking", [("userId", ASCENDING), ("dateTime", DESCENDING)], False),
    ("payment", [("coachId", ASCENDING), ("status", ASCENDING)], False),
    ("review", [("coachId", ASCENDING)], False),
]


def ensure_indexes(db: MongoDatabase):
    for collection_name, keys, unique in INDEXES:
        db[collection_name].create_index(keys, unique=unique)


class Database:
    def __init__(
        self,
        url: Optional[str],
        name: str,
        client_factory: Callable[..., Any] = MongoClient,
        timeout_ms: int = 5000,
        socket_timeout_ms: int = 45000,
        retry_after: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.name = name
        self.timeout_ms = timeout_ms
        self.socket_timeout_ms = socket_timeout_ms
        self.retry_after = retry_after
        self._client_factory = client_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._client = None
        self._db: Optional[MongoDatabase] = None
        self._failed_at: Optional[float] = None
        self._error: Optional[str] = None
        self.connect_attempts = 0

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def get(self) -> MongoDatabase:
        db = self._db
        if db is not None:
            return db
        with self._lock:
            if self._db is not None:
                return self._db
            if not self.url:
                raise DatabaseUnavailable("Database not configured")
            if self._failed_at is not None and self._clock() - self._failed_at < self.retry_after:
                raise DatabaseUnavailable(self._error)

            self.connect_attempts += 1
            try:
                client = self._client_factory(
                    self.url,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.socket_timeout_ms,
                )
                client.admin.command("ping")
                ensure_indexes(client[self.name])
            except PyMongoError as e:
                self._failed_at = self._clock()
                self._error = f"Database connection failed: {str(e)[:80]}"
                logger.error("MongoDB connection failed: %s", e)
                raise DatabaseUnavailable(self._error) from e

            self._client = client
            self._db = client[self.name]
            self._failed_at = None
            self._error = None
            logger.info("Connected to MongoDB database %s", self.name)
            return self._db

    def close(self):
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._db = None


def to_dict(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(db: MongoDatabase, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: MongoDatabase, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [to_dict(d) for d in cursor]


def ping(database: Database) -> Dict[str, Any]:
    try:
        db = database.get()
        return {"connected": True, "collections": db.list_collection_names()[:10]}
    except (DatabaseUnavailable, PyMongoError) as e:
        return {"connected": False, "error": str(e)[:80]}
