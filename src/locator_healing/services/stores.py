"""Document store adapters for healing sessions, selector updates and test steps."""

import asyncio
import copy
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..core.config import settings
from ..core.exceptions import PersistenceFailure

logger = logging.getLogger("healing.repository")

HEALING_SESSIONS = "healing_sessions"
SELECTOR_UPDATES = "selector_updates"
TEST_STEPS = "test_steps"


CREATE_DOCUMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    PRIMARY KEY (collection, id)
)
"""
INSERT_DOCUMENT = "INSERT INTO documents (collection, id, body) VALUES (?, ?, ?)"
UPDATE_DOCUMENT = "UPDATE documents SET body = ? WHERE collection = ? AND id = ?"
SELECT_DOCUMENT = "SELECT body FROM documents WHERE collection = ? AND id = ?"
SELECT_COLLECTION = "SELECT body FROM documents WHERE collection = ? ORDER BY rowid"


def _record_id(collection: str, record: Dict[str, Any]) -> str:
    record_id = record.get("id")
    if not record_id:
        raise PersistenceFailure(collection, None, "record has no id")
    return str(record_id)


class InMemoryHealingStore:
    """Process-local store. Records are deep-copied in and out."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    async def insert(self, collection: str, record: Dict[str, Any]) -> None:
        record_id = _record_id(collection, record)
        rows = self._collections.setdefault(collection, {})
        if record_id in rows:
            raise PersistenceFailure(collection, record_id, "duplicate id")
        rows[record_id] = copy.deepcopy(record)

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        rows = self._collections.get(collection, {})
        if record_id not in rows:
            raise PersistenceFailure(collection, record_id, "record not found")
        rows[record_id].update(copy.deepcopy(patch))

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def find_where(self, collection: str,
                         predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(row)
            for row in self._collections.get(collection, {}).values()
            if predicate(row)
        ]


class SqliteHealingStore:
    """JSON documents in a single SQLite table keyed by (collection, id).

    Blocking sqlite3 calls run in the default executor.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or settings.SQLITE_STORE_PATH
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.initialize_schema()

    def initialize_schema(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(CREATE_DOCUMENTS_TABLE)
            conn.commit()
        logger.info(f"Healing store schema initialized at {self.db_path}")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    def _insert(self, collection: str, record: Dict[str, Any]) -> None:
        record_id = _record_id(collection, record)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(INSERT_DOCUMENT, (collection, record_id, json.dumps(record, default=str)))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(collection, record_id, str(e)) from e

    def _update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(SELECT_DOCUMENT, (collection, record_id)).fetchone()
                if row is None:
                    raise PersistenceFailure(collection, record_id, "record not found")
                body = json.loads(row[0])
                body.update(patch)
                conn.execute(UPDATE_DOCUMENT, (json.dumps(body, default=str), collection, record_id))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(collection, record_id, str(e)) from e

    def _find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(SELECT_DOCUMENT, (collection, record_id)).fetchone()
        return json.loads(row[0]) if row else None

    def _find_all(self, collection: str) -> List[Dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(SELECT_COLLECTION, (collection,)).fetchall()
        return [json.loads(body) for (body,) in rows]

    async def insert(self, collection: str, record: Dict[str, Any]) -> None:
        await self._run(self._insert, collection, record)

    async def update(self, collection: str, record_id: str, patch: Dict[str, Any]) -> None:
        await self._run(self._update, collection, record_id, patch)

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._find_by_id, collection, record_id)

    async def find_where(self, collection: str,
                         predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        rows = await self._run(self._find_all, collection)
        return [row for row in rows if predicate(row)]
