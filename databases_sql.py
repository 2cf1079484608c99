# SQLite-backed document store. Every collection lives in one table of JSON
# documents; filters and update operators are evaluated in Python.

import asyncio
import json
import logging
import operator
import sqlite3
import uuid
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from errors import ConflictException, StoreUnavailable
from models import DeleteResult, InsertResult, UpdateResult

logger = logging.getLogger(__name__)

CLASSES = "classes"
BOOKED_CLASSES = "booked-classes"
USERS = "users"
PAYMENTS = "payments"

DESCENDING = -1

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    body TEXT NOT NULL,
    UNIQUE(collection, doc_id)
);
"""

Document = Dict[str, Any]
Filter = Dict[str, Any]


def new_id() -> str:
    return uuid.uuid4().hex


def _compare(fn):
    def check(value, operand):
        if value is None:
            return False
        try:
            return fn(value, operand)
        except TypeError:
            return False

    return check


_OPERATORS = {
    "$gt": _compare(operator.gt),
    "$gte": _compare(operator.ge),
    "$lt": _compare(operator.lt),
    "$lte": _compare(operator.le),
    "$ne": operator.ne,
    "$in": lambda value, operand: value in operand,
}


def _is_operator_spec(cond) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def matches(doc: Document, filter: Optional[Filter]) -> bool:
    for key, cond in (filter or {}).items():
        value = doc.get(key)
        if _is_operator_spec(cond):
            for op, operand in cond.items():
                if op not in _OPERATORS:
                    raise ValueError(f"unsupported filter operator {op}")
                if not _OPERATORS[op](value, operand):
                    return False
        elif value != cond:
            return False
    return True


def apply_update(doc: Document, update: Dict[str, Dict[str, Any]]) -> Document:
    changed = dict(doc)
    for op, fields in update.items():
        fields = {k: v for k, v in fields.items() if k != "_id"}
        if op == "$set":
            changed.update(fields)
        elif op == "$inc":
            for key, by in fields.items():
                changed[key] = (changed.get(key) or 0) + by
        else:
            raise ValueError(f"unsupported update operator {op}")
    return changed


def _sort(docs: List[Document], sort: Sequence[Tuple[str, int]]) -> List[Document]:
    # Stable sorts applied last key first; missing values sort lowest.
    for key, direction in reversed(list(sort)):
        docs = sorted(
            docs,
            key=lambda d: (d.get(key) is not None, d.get(key)),
            reverse=direction == DESCENDING,
        )
    return docs


class Collection:
    """Async view over one named collection of a ``DocumentStore``."""

    def __init__(self, store: "DocumentStore", name: str):
        self.store = store
        self.name = name

    async def find(
        self,
        filter: Optional[Filter] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        docs = await self.store.run(self.store.select, self.name, filter)
        if sort:
            docs = _sort(docs, sort)
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def find_one(self, filter: Optional[Filter] = None) -> Optional[Document]:
        docs = await self.store.run(self.store.select, self.name, filter, 1)
        return docs[0] if docs else None

    async def insert_one(self, document: Document) -> InsertResult:
        inserted_id = await self.store.run(self.store.insert, self.name, document, None)
        return InsertResult(inserted_id=inserted_id)

    async def insert_one_if_absent(
        self, filter: Filter, document: Document
    ) -> Optional[InsertResult]:
        """Insert unless a document matching ``filter`` exists, atomically.

        Returns None when a matching document was already present.
        """
        inserted_id = await self.store.run(self.store.insert, self.name, document, filter)
        if inserted_id is None:
            return None
        return InsertResult(inserted_id=inserted_id)

    async def update_one(self, filter: Filter, update: Dict[str, Dict[str, Any]]) -> UpdateResult:
        matched, modified = await self.store.run(self.store.update, self.name, filter, update)
        return UpdateResult(matched_count=matched, modified_count=modified)

    async def delete_one(self, filter: Filter) -> DeleteResult:
        deleted = await self.store.run(self.store.delete, self.name, filter, 1)
        return DeleteResult(deleted_count=deleted)

    async def delete_many(self, filter: Optional[Filter] = None) -> DeleteResult:
        deleted = await self.store.run(self.store.delete, self.name, filter, None)
        return DeleteResult(deleted_count=deleted)

    async def count_documents(self, filter: Optional[Filter] = None) -> int:
        return len(await self.store.run(self.store.select, self.name, filter))

    async def estimated_document_count(self) -> int:
        return await self.store.run(self.store.count, self.name)


class DocumentStore:
    def __init__(self, path):
        self.path = Path(path)

    def get_conn(self):
        conn = sqlite3.connect(
            str(self.path), check_same_thread=False, isolation_level=None, timeout=10
        )
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        conn = self.get_conn()
        with closing(conn):
            conn.executescript(SCHEMA)
        logger.info("Document store ready at %s", self.path)

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    async def run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.IntegrityError as exc:
            raise ConflictException("document already exists") from exc
        except sqlite3.Error as exc:
            logger.error("Document store call %s failed: %s", fn.__name__, exc)
            raise StoreUnavailable() from exc

    # ---------- Sync helpers (run in a worker thread) ----------
    @contextmanager
    def _write_transaction(self):
        conn = self.get_conn()
        with closing(conn):
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @staticmethod
    def _rows(conn, collection: str, filter: Optional[Filter]) -> Iterable[Tuple[int, Document]]:
        doc_id = (filter or {}).get("_id")
        if isinstance(doc_id, str):
            cur = conn.execute(
                "SELECT seq, body FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
        else:
            cur = conn.execute(
                "SELECT seq, body FROM documents WHERE collection = ? ORDER BY seq",
                (collection,),
            )
        for row in cur.fetchall():
            doc = json.loads(row["body"])
            if matches(doc, filter):
                yield row["seq"], doc

    def select(self, collection: str, filter: Optional[Filter], limit: Optional[int] = None):
        conn = self.get_conn()
        with closing(conn):
            docs = []
            for _, doc in self._rows(conn, collection, filter):
                docs.append(doc)
                if limit is not None and len(docs) >= limit:
                    break
            return docs

    def insert(self, collection: str, document: Document, unless: Optional[Filter]):
        doc = dict(document)
        doc["_id"] = str(doc.get("_id") or new_id())
        with self._write_transaction() as conn:
            if unless is not None and next(iter(self._rows(conn, collection, unless)), None):
                return None
            conn.execute(
                "INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?)",
                (collection, doc["_id"], json.dumps(doc, default=str)),
            )
        return doc["_id"]

    def update(self, collection: str, filter: Filter, update):
        with self._write_transaction() as conn:
            found = next(iter(self._rows(conn, collection, filter)), None)
            if found is None:
                return 0, 0
            seq, doc = found
            changed = apply_update(doc, update)
            if changed == doc:
                return 1, 0
            conn.execute(
                "UPDATE documents SET body = ? WHERE seq = ?",
                (json.dumps(changed, default=str), seq),
            )
        return 1, 1

    def delete(self, collection: str, filter: Optional[Filter], limit: Optional[int]):
        with self._write_transaction() as conn:
            seqs = [seq for seq, _ in self._rows(conn, collection, filter)]
            if limit is not None:
                seqs = seqs[:limit]
            conn.executemany("DELETE FROM documents WHERE seq = ?", [(s,) for s in seqs])
        return len(seqs)

    def count(self, collection: str) -> int:
        conn = self.get_conn()
        with closing(conn):
            cur = conn.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
            )
            return cur.fetchone()[0]
