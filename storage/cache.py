"""
SQLite enrichment cache.
Remembers, per issue identity, the content fingerprint the last enrichment saw and the summary it produced,
plus the aggregate fingerprint of the last complete run.
"""

import sqlite3
import json
import time
from typing import Optional, Any, Dict, List
import threading
import os
from normalize.models import Summary

BATCH_FINGERPRINT_KEY = 'batch_fingerprint'

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS enrichment_cache (
    key TEXT PRIMARY KEY,
    fingerprint TEXT NOT NULL,
    summary TEXT,
    timestamp REAL
);
CREATE TABLE IF NOT EXISTS cache_meta (
    name TEXT PRIMARY KEY,
    value TEXT
);
"""


class CacheRecord:
    """Last known fingerprint and enrichment result for one issue."""

    def __init__(self, fingerprint: str, summary: Optional[Summary] = None, timestamp: Optional[float] = None):
        self.fingerprint = fingerprint
        self.summary = summary
        self.timestamp = timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            'fingerprint': self.fingerprint,
            'summary': self.summary.to_dict() if self.summary else None,
            'timestamp': self.timestamp,
        }


class EnrichmentCache:
    def __init__(self, path: Optional[str] = None):
        """Create a cache instance.

        :param path: SQLite file path or None for in-memory.
        """
        self.path = path or ':memory:'
        if self.path != ':memory:':
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if self.conn is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def stats(self) -> Dict[str, Any]:
        """Return basic statistics: entry count, entries holding a summary, oldest/newest timestamps."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1), COUNT(summary), MIN(timestamp), MAX(timestamp) FROM enrichment_cache')
            count, with_summary, oldest, newest = cur.fetchone()
        return {
            'count': int(count or 0),
            'with_summary': int(with_summary or 0),
            'oldest': float(oldest) if oldest is not None else None,
            'newest': float(newest) if newest is not None else None,
            'batch_fingerprint': self.get_batch_fingerprint(),
        }

    # noinspection SqlResolve
    def list_keys(self, limit: int = 1000) -> List[Dict[str, Any]]:
        """Return cache keys with basic metadata (key, fingerprint, has_summary, timestamp), newest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT key, fingerprint, summary IS NOT NULL, timestamp FROM enrichment_cache ORDER BY timestamp DESC LIMIT ?', (limit,))
            rows = cur.fetchall()
        return [{'key': k, 'fingerprint': fp, 'has_summary': bool(has), 'timestamp': float(ts or 0)} for k, fp, has, ts in rows]

    # noinspection SqlWithoutWhere
    def clear(self):
        """Clear all entries, including the batch fingerprint."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM enrichment_cache')
            cur.execute('DELETE FROM cache_meta')
            self.conn.commit()

    # noinspection SqlResolve
    def delete_key(self, key: str) -> int:
        """Delete a specific cache key. Returns number of rows deleted."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('DELETE FROM enrichment_cache WHERE key = ?', (key,))
            removed = cur.rowcount
            cur.execute('DELETE FROM cache_meta WHERE name = ?', (BATCH_FINGERPRINT_KEY,))
            self.conn.commit()
            return removed

    # noinspection SqlResolve
    def get(self, key: str) -> Optional[CacheRecord]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT fingerprint, summary, timestamp FROM enrichment_cache WHERE key = ?', (key,))
            row = cur.fetchone()
        if not row:
            return None
        fingerprint, summary, timestamp = row
        parsed = Summary.from_dict(json.loads(summary)) if summary else None
        return CacheRecord(fingerprint, parsed, timestamp)

    # noinspection SqlResolve
    def set(self, key: str, fingerprint: str, summary: Optional[Summary]):
        payload = json.dumps(summary.to_dict(), ensure_ascii=False) if summary else None
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('REPLACE INTO enrichment_cache(key, fingerprint, summary, timestamp) VALUES (?, ?, ?, ?)', (key, fingerprint, payload, time.time()))
            # any per-issue change invalidates the aggregate of the last complete run
            cur.execute('DELETE FROM cache_meta WHERE name = ?', (BATCH_FINGERPRINT_KEY,))
            self.conn.commit()

    # noinspection SqlResolve
    def get_batch_fingerprint(self) -> Optional[str]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT value FROM cache_meta WHERE name = ?', (BATCH_FINGERPRINT_KEY,))
            row = cur.fetchone()
        return row[0] if row else None

    # noinspection SqlResolve
    def set_batch_fingerprint(self, value: str):
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('REPLACE INTO cache_meta(name, value) VALUES (?, ?)', (BATCH_FINGERPRINT_KEY, value))
            self.conn.commit()


__all__ = ["EnrichmentCache", "CacheRecord"]
