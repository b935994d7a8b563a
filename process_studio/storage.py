"""Persistence adapters for catalogs and workflow documents."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Dict, Generic, Iterator, List, Optional, Sequence, Type, TypeVar

from .documents import Document, dump_edge, dump_node, empty_document, load_graph
from .domain import Edge, InventoryItem, Node, ProcessDefinition, Task
from .graph import WorkflowGraph
from .repository import DuplicateIdError, NotFoundError

T = TypeVar("T")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteRepository(Generic[T]):
    """Repository of flat dataclass records stored as JSON inside SQLite."""

    def __init__(
        self, connection: sqlite3.Connection, table: str, record_type: Type[T]
    ) -> None:
        self._connection = connection
        self._table = table
        self._record_type = record_type
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, payload TEXT NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        cursor = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
        value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        if item_id in self:
            raise DuplicateIdError(f"Record with id {item_id!r} already exists")
        self._connection.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
            (item_id, json.dumps(asdict(item))),
        )
        self._connection.commit()

    def replace(self, item_id: str, item: T) -> None:
        cursor = self._connection.execute(
            f"UPDATE {self._table} SET payload = ? WHERE id = ?",
            (json.dumps(asdict(item)), item_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Record with id {item_id!r} not found")
        self._connection.commit()

    def get(self, item_id: str) -> T:
        item = self.find(item_id)
        if item is None:
            raise NotFoundError(f"Record with id {item_id!r} not found")
        return item

    def find(self, item_id: str) -> Optional[T]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._record_type(**json.loads(row[0]))

    def discard(self, item_id: str) -> Optional[T]:
        item = self.find(item_id)
        if item is not None:
            self._connection.execute(f"DELETE FROM {self._table} WHERE id = ?", (item_id,))
            self._connection.commit()
        return item

    def list(self) -> List[T]:
        cursor = self._connection.execute(f"SELECT payload FROM {self._table} ORDER BY rowid")
        return [self._record_type(**json.loads(row[0])) for row in cursor.fetchall()]


class WorkflowStore:
    """Saves and loads workflow documents keyed by process id.

    ``load`` of an unknown process returns an empty document rather than
    failing.
    """

    def save(self, process_id: str, nodes: Sequence[Node], edges: Sequence[Edge]) -> Document:
        document: Document = {
            "nodes": [dump_node(node) for node in nodes],
            "edges": [dump_edge(edge) for edge in edges],
        }
        self._write(process_id, json.dumps(document))
        return document

    def load(self, process_id: str) -> Document:
        raw = self._read(process_id)
        if raw is None:
            return empty_document()
        return json.loads(raw)

    def save_graph(self, process_id: str, graph: WorkflowGraph) -> Document:
        return self.save(process_id, graph.nodes(), graph.edges())

    def load_graph(self, process_id: str) -> WorkflowGraph:
        return load_graph(self.load(process_id))

    def _write(self, process_id: str, raw: str) -> None:
        raise NotImplementedError

    def _read(self, process_id: str) -> Optional[str]:
        raise NotImplementedError


class InMemoryWorkflowStore(WorkflowStore):
    """Keeps serialized documents in a dictionary."""

    def __init__(self) -> None:
        self._documents: Dict[str, str] = {}

    def __contains__(self, process_id: object) -> bool:
        return process_id in self._documents

    def _write(self, process_id: str, raw: str) -> None:
        self._documents[process_id] = raw

    def _read(self, process_id: str) -> Optional[str]:
        return self._documents.get(process_id)


class SQLiteWorkflowStore(WorkflowStore):
    """Stores workflow documents as JSON text in SQLite."""

    def __init__(self, connection: sqlite3.Connection, table: str = "workflows") -> None:
        self._connection = connection
        self._table = table
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "process_id TEXT PRIMARY KEY, document TEXT NOT NULL, updated_at TEXT NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, process_id: object) -> bool:
        if not isinstance(process_id, str):
            return False
        return self._read(process_id) is not None

    def _write(self, process_id: str, raw: str) -> None:
        self._connection.execute(
            f"INSERT INTO {self._table} (process_id, document, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(process_id) DO UPDATE SET document = excluded.document, "
            "updated_at = excluded.updated_at",
            (process_id, raw, _utc_timestamp()),
        )
        self._connection.commit()

    def _read(self, process_id: str) -> Optional[str]:
        cursor = self._connection.execute(
            f"SELECT document FROM {self._table} WHERE process_id = ?", (process_id,)
        )
        row = cursor.fetchone()
        return row[0] if row else None


class StudioDatabase:
    """Convenience facade bundling the SQLite repositories of the studio."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self.inventory = SQLiteRepository(connection, "inventory", InventoryItem)
        self.tasks = SQLiteRepository(connection, "tasks", Task)
        self.processes = SQLiteRepository(connection, "processes", ProcessDefinition)
        self.workflows = SQLiteWorkflowStore(connection)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "StudioDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = [
    "SQLiteRepository",
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "SQLiteWorkflowStore",
    "StudioDatabase",
]
