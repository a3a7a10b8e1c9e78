"""
SQLite issue store.
Keeps one JSON document per (repo, number), a full-text index over title/body/comment bodies,
and can export/import every document to a JSON snapshot file.
"""

import json
import logging
import os
import re
import sqlite3
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from errors import TransientStorageError
from normalize.models import Issue, IMPLEMENTATION_STATUSES

logger = logging.getLogger(__name__)

# externally assigned fields: a sync pass never clears them
PRESERVED_FIELDS = ('priority_score', 'implementation_status')

TOKEN_PATTERN = re.compile(r'\w+', re.UNICODE)

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS issues (
    pk INTEGER PRIMARY KEY AUTOINCREMENT,
    repo TEXT NOT NULL,
    number INTEGER NOT NULL,
    id TEXT,
    doc TEXT NOT NULL,
    indexed_at REAL NOT NULL,
    UNIQUE (repo, number)
);
CREATE INDEX IF NOT EXISTS issues_indexed_at ON issues (indexed_at);
CREATE VIRTUAL TABLE IF NOT EXISTS issues_fts USING fts5(title, body, comments);
"""


def _fts_columns(doc: Dict[str, Any]) -> Tuple[str, str, str]:
    comments = ' '.join((c.get('body') or '') for c in doc.get('comments_detail') or [])
    return doc.get('title') or '', doc.get('body') or '', comments


def build_match_expression(query: str) -> Optional[str]:
    """Quote every word of the query and OR them together; more matching words rank higher."""
    tokens = TOKEN_PATTERN.findall(query or '')
    if not tokens:
        return None
    return ' OR '.join('"' + t.replace('"', '""') + '"' for t in tokens)


class IssueStore:
    def __init__(self, path: Optional[str] = None, clock: Callable[[], float] = time.time):
        """Open (and create if needed) the store.

        :param path: SQLite file path or None for in-memory.
        """
        self.path = path or ':memory:'
        if self.path != ':memory:':
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._clock = clock
        with self._lock:
            self.conn.executescript(SQL_CREATE)
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
    def _write(self, doc: Dict[str, Any], replace: bool = False) -> bool:
        """Insert or merge-update one document and its index row in a single transaction. Returns True if inserted."""
        repo, number = doc['repo'], int(doc['number'])
        with self._lock:
            try:
                with self.conn:
                    cur = self.conn.cursor()
                    cur.execute('SELECT pk, doc FROM issues WHERE repo = ? AND number = ?', (repo, number))
                    row = cur.fetchone()
                    if row:
                        pk, existing_raw = row
                        merged = doc if replace else _merge(json.loads(existing_raw), doc)
                        cur.execute(
                            'UPDATE issues SET id = ?, doc = ?, indexed_at = ? WHERE pk = ?',
                            (merged.get('id'), json.dumps(merged, ensure_ascii=False), self._clock(), pk),
                        )
                        cur.execute('DELETE FROM issues_fts WHERE rowid = ?', (pk,))
                    else:
                        merged = doc
                        cur.execute(
                            'INSERT INTO issues (repo, number, id, doc, indexed_at) VALUES (?, ?, ?, ?, ?)',
                            (repo, number, doc.get('id'), json.dumps(doc, ensure_ascii=False), self._clock()),
                        )
                        pk = cur.lastrowid
                    cur.execute('INSERT INTO issues_fts (rowid, title, body, comments) VALUES (?, ?, ?, ?)', (pk,) + _fts_columns(merged))
            except sqlite3.OperationalError as ex:
                raise TransientStorageError(f"write failed for {repo}#{number}: {ex}") from ex
        return row is None

    def upsert(self, issue: Issue) -> bool:
        """Insert the issue, or merge it over the existing record with the same (repo, number)."""
        created = self._write(issue.to_dict())
        logger.debug("%s issue #%s", "Created" if created else "Updated", issue.number)
        return created

    # noinspection SqlResolve
    def get(self, repo: str, number: int) -> Optional[Issue]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT doc FROM issues WHERE repo = ? AND number = ?', (repo, int(number)))
            row = cur.fetchone()
        return Issue.from_dict(json.loads(row[0])) if row else None

    # noinspection SqlResolve
    def count(self) -> int:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT COUNT(1) FROM issues')
            return int(cur.fetchone()[0] or 0)

    # noinspection SqlResolve
    def all(self) -> List[Issue]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT doc FROM issues ORDER BY repo, number')
            rows = cur.fetchall()
        return [Issue.from_dict(json.loads(r[0])) for r in rows]

    # noinspection SqlResolve
    def recent(self, limit: int = 1000) -> List[Issue]:
        """The most recently indexed issues, newest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT doc FROM issues ORDER BY indexed_at DESC, pk DESC LIMIT ?', (limit,))
            rows = cur.fetchall()
        return [Issue.from_dict(json.loads(r[0])) for r in rows]

    # noinspection SqlResolve
    def full_text_search(self, query: str, limit: int = 50) -> List[Tuple[Issue, float]]:
        """Relevance-ranked (bm25) hits over title, body and comment bodies. Higher score is better."""
        expression = build_match_expression(query)
        if expression is None:
            return []
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'SELECT i.doc, bm25(issues_fts) AS rank FROM issues_fts '
                'JOIN issues i ON i.pk = issues_fts.rowid '
                'WHERE issues_fts MATCH ? ORDER BY rank, i.pk LIMIT ?',
                (expression, limit),
            )
            rows = cur.fetchall()
        return [(Issue.from_dict(json.loads(doc)), -float(rank)) for doc, rank in rows]

    def set_triage(self, repo: str, number: int, priority_score: Optional[float] = None, implementation_status: Optional[str] = None) -> Issue:
        """Assign the externally managed priority score and/or implementation status."""
        if implementation_status is not None and implementation_status not in IMPLEMENTATION_STATUSES:
            raise ValueError(f"Invalid implementation status: {implementation_status} (expected one of {', '.join(IMPLEMENTATION_STATUSES)})")
        with self._lock:
            issue = self.get(repo, number)
            if issue is None:
                raise KeyError(f"{repo}#{number}")
            if priority_score is not None:
                issue.priority_score = float(priority_score)
            if implementation_status is not None:
                issue.implementation_status = implementation_status
            self._write(issue.to_dict(), replace=True)
        return issue

    def export_snapshot(self, path: str) -> int:
        """Write every document to a JSON file. Returns the number of documents written."""
        docs = [i.to_dict() for i in self.all()]
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(docs, f, ensure_ascii=False, indent=2)
        logger.info("Exported %d issues to %s", len(docs), path)
        return len(docs)

    def import_snapshot(self, path: str) -> int:
        """Load documents from a JSON snapshot, replacing stored documents with the same identity."""
        if not os.path.exists(path):
            logger.info("No snapshot at %s, skipping import", path)
            return 0
        with open(path, 'r', encoding='utf-8') as f:
            docs = json.load(f)
        if not isinstance(docs, list):
            raise ValueError(f"Snapshot {path} must contain a JSON array")
        imported = 0
        for doc in docs:
            if not isinstance(doc, dict) or not doc.get('repo') or doc.get('number') is None:
                logger.warning("Skipping malformed snapshot entry in %s", path)
                continue
            self._write(Issue.from_dict(doc).to_dict(), replace=True)
            imported += 1
        logger.info("Imported %d issues from %s", imported, path)
        return imported


def _merge(existing: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(existing)
    for k, v in update.items():
        if v is None and k in PRESERVED_FIELDS:
            continue
        merged[k] = v
    return merged


__all__ = ["IssueStore", "build_match_expression"]
