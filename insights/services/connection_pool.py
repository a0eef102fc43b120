"""One reusable MongoDB client per logical database name."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from insights.core.errors import DatabaseConnectionError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class PoolEntry:
    client: Any
    db: Any
    closed: bool = False


def _is_connected(entry: PoolEntry) -> bool:
    if entry.closed:
        return False
    description = getattr(entry.client, "topology_description", None)
    if description is None:
        # Clients without topology introspection (test doubles) count as live
        return True
    try:
        return bool(description.has_readable_server())
    except PyMongoError:
        return False


class ConnectionPool:
    """Borrow-only pool of ``PoolEntry`` objects keyed by database name.

    The connect call itself is not serialized. When two first-time acquires
    race, whichever stores second finds the other's live entry, closes its own
    client and returns the stored one.
    """

    def __init__(
        self,
        uri: str,
        client_factory: Optional[Callable[[str], Any]] = None,
        server_selection_timeout_ms: int = 5000,
    ):
        self.uri = uri
        self._client_factory = client_factory or (
            lambda u: MongoClient(u, serverSelectionTimeoutMS=server_selection_timeout_ms)
        )
        self._entries: Dict[str, PoolEntry] = {}
        self._lock = threading.Lock()

    def acquire(self, db_name: str) -> PoolEntry:
        if not db_name:
            raise ValidationError("Database name is required")

        entry = self._entries.get(db_name)
        if entry is not None and _is_connected(entry):
            return entry

        fresh = self._connect(db_name)
        with self._lock:
            current = self._entries.get(db_name)
            if current is not None and current is not entry and _is_connected(current):
                # Lost the race; keep the entry other callers already hold
                self._close_client(fresh)
                return current
            self._entries[db_name] = fresh
        if entry is not None:
            self._close_client(entry)
            logger.info("mongo.pool.replaced_stale", extra={"db_name": db_name})
        return fresh

    def _connect(self, db_name: str) -> PoolEntry:
        if not self.uri:
            raise DatabaseConnectionError("MONGODB_URI is not configured")
        try:
            client = self._client_factory(self.uri)
            client.admin.command("ping")
        except PyMongoError as e:
            logger.error("mongo.pool.connect_failed", extra={"db_name": db_name, "error": str(e)})
            raise DatabaseConnectionError(f"Could not connect to database '{db_name}'", str(e))
        logger.info("mongo.pool.connected", extra={"db_name": db_name})
        return PoolEntry(client=client, db=client[db_name])

    @staticmethod
    def _close_client(entry: PoolEntry) -> None:
        entry.closed = True
        try:
            entry.client.close()
        except PyMongoError as e:
            logger.warning("mongo.pool.close_failed", extra={"error": str(e)})

    def close_all(self) -> None:
        with self._lock:
            entries = list(self._entries.items())
            self._entries.clear()
        for db_name, entry in entries:
            self._close_client(entry)
            logger.info("mongo.pool.closed", extra={"db_name": db_name})

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {"size": len(self._entries), "databases": sorted(self._entries)}
