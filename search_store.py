"""Analysis history store.

``InMemoryAnalysisStore`` lives for the process only and is the default.
``SQLiteAnalysisStore`` keeps the same interface on disk for deployments that
need history to survive restarts.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from uuid import uuid4
import json
import logging
import os
import sqlite3
import threading

import config
from errors import MissingQuery

logger = logging.getLogger(__name__)


def record_matches(record: Dict[str, Any], query: str) -> bool:
    """Case-insensitive substring match on diagnosis and each recommendation.

    ``query`` must already be lower-cased.
    """
    if query in str(record.get("diagnosis") or "").lower():
        return True
    return any(query in str(rec).lower() for rec in record.get("recommendations") or [])


def _stamp(record: Dict[str, Any]) -> Dict[str, Any]:
    stored = dict(record)
    stored.setdefault("diagnosis", "")
    stored.setdefault("recommendations", [])
    stored["id"] = str(uuid4())
    stored["createdAt"] = datetime.now(timezone.utc).isoformat()
    return stored


class AnalysisStore:
    backend_name: str = "base"

    def append(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Store one record and return it with ``id`` and ``createdAt`` set."""
        raise NotImplementedError

    def query_by_substring(self, text: str) -> List[Dict[str, Any]]:
        """Return matching records in insertion order. ``text`` is lower-cased."""
        raise NotImplementedError

    def search(self, query: Optional[str]) -> List[Dict[str, Any]]:
        if not query or not query.strip():
            raise MissingQuery()
        return self.query_by_substring(query.lower())


class InMemoryAnalysisStore(AnalysisStore):
    backend_name = "memory"

    def __init__(self) -> None:
        self._records: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def append(self, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = _stamp(record)
        with self._lock:
            self._records.append(stored)
        return stored

    def query_by_substring(self, text: str) -> List[Dict[str, Any]]:
        with self._lock:
            snapshot = list(self._records)
        return [r for r in snapshot if record_matches(r, text)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SQLiteAnalysisStore(AnalysisStore):
    backend_name = "sqlite"

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """CREATE TABLE IF NOT EXISTS analyses (
                    id TEXT PRIMARY KEY,
                    created_at TEXT,
                    diagnosis TEXT,
                    payload TEXT
                )"""
            )
            conn.commit()
        finally:
            conn.close()

    def append(self, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = _stamp(record)
        with self._lock:
            conn = self._get_conn()
            try:
                conn.execute(
                    "INSERT INTO analyses (id, created_at, diagnosis, payload) VALUES (:id, :created_at, :diagnosis, :payload)",
                    {
                        "id": stored["id"],
                        "created_at": stored["createdAt"],
                        "diagnosis": str(stored["diagnosis"]),
                        "payload": json.dumps(stored),
                    },
                )
                conn.commit()
            finally:
                conn.close()
        return stored

    def query_by_substring(self, text: str) -> List[Dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT payload FROM analyses ORDER BY rowid").fetchall()
        finally:
            conn.close()
        records = [json.loads(r["payload"]) for r in rows]
        return [r for r in records if record_matches(r, text)]


def create_store() -> AnalysisStore:
    backend = config.ANALYSIS_STORE_BACKEND.lower()
    if backend == "sqlite":
        logger.info("Using SQLite analysis store at %s", config.ANALYSIS_SQLITE_PATH)
        return SQLiteAnalysisStore(config.ANALYSIS_SQLITE_PATH)
    if backend != "memory":
        logger.warning("Unknown ANALYSIS_STORE_BACKEND %r; falling back to memory", backend)
    logger.info("Using in-memory analysis store; history is lost on restart")
    return InMemoryAnalysisStore()
