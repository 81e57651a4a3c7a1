"""
In-process DatabaseClient backed by dictionaries.

Used by the tests and the example script. A transaction snapshots the whole
store on begin and restores it on rollback; a lock shared by every client of
the same store serializes writers, so two clients racing to create the same
dimension or drawing end up with one record.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID, uuid4

from ..identity import IdentityKey
from ..models import ComponentRecord
from ..schema import DIMENSION_TYPES
from .import_executor import DatabaseClient

logger = logging.getLogger(__name__)


@dataclass
class InMemoryStore:
    """Shared state for one or more InMemoryClient instances."""
    # dimension type -> (project_id, name) -> id
    dimensions: Dict[str, Dict[Tuple[UUID, str], UUID]] = field(
        default_factory=lambda: {t: {} for t in DIMENSION_TYPES.values()}
    )
    # (project_id, drawing_no_norm) -> {"id", "drawing_no_norm", "drawing_no_raw"}
    drawings: Dict[Tuple[UUID, str], Dict[str, Any]] = field(default_factory=dict)
    components: List[ComponentRecord] = field(default_factory=list)
    # (project_id, identity key)
    identity_index: Set[Tuple[UUID, IdentityKey]] = field(default_factory=set)
    progress_templates: Dict[str, UUID] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "dimensions": copy.deepcopy(self.dimensions),
            "drawings": copy.deepcopy(self.drawings),
            "components": list(self.components),
            "identity_index": set(self.identity_index),
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.dimensions = snapshot["dimensions"]
        self.drawings = snapshot["drawings"]
        self.components = snapshot["components"]
        self.identity_index = snapshot["identity_index"]


class InMemoryClient(DatabaseClient):
    """DatabaseClient over an InMemoryStore."""

    def __init__(self, store: Optional[InMemoryStore] = None,
                 progress_templates: Optional[Dict[str, UUID]] = None):
        self.store = store or InMemoryStore()
        if progress_templates:
            self.store.progress_templates.update(progress_templates)
        self._snapshot = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        if self._snapshot is not None:
            raise RuntimeError("Transaction already in progress")
        self.store.lock.acquire()
        self._snapshot = self.store.snapshot()

    def commit_transaction(self) -> None:
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress")
        self._snapshot = None
        self.store.lock.release()

    def rollback_transaction(self) -> None:
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress")
        try:
            self.store.restore(self._snapshot)
        finally:
            self._snapshot = None
            self.store.lock.release()

    def _require_transaction(self) -> None:
        if self._snapshot is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_existing_identity_keys(self, project_id: UUID, keys: Iterable[IdentityKey]) -> Set[IdentityKey]:
        self._require_transaction()
        return {key for key in keys if (project_id, key) in self.store.identity_index}

    def find_dimensions(self, project_id: UUID, dimension_type: str, names: Iterable[str]) -> Dict[str, UUID]:
        self._require_transaction()
        table = self.store.dimensions[dimension_type]
        return {name: table[(project_id, name)] for name in names if (project_id, name) in table}

    def find_drawings(self, project_id: UUID, drawing_norms: Iterable[str]) -> Dict[str, UUID]:
        self._require_transaction()
        return {
            norm: self.store.drawings[(project_id, norm)]["id"]
            for norm in drawing_norms if (project_id, norm) in self.store.drawings
        }

    def get_progress_templates(self) -> Dict[str, UUID]:
        self._require_transaction()
        return dict(self.store.progress_templates)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_dimensions(self, project_id: UUID, dimension_type: str,
                          names: Iterable[str]) -> Tuple[Dict[str, UUID], List[str]]:
        self._require_transaction()
        table = self.store.dimensions[dimension_type]
        lookup: Dict[str, UUID] = {}
        created: List[str] = []
        for name in names:
            if (project_id, name) not in table:
                table[(project_id, name)] = uuid4()
                created.append(name)
            lookup[name] = table[(project_id, name)]
        return lookup, created

    def upsert_drawings(self, project_id: UUID,
                        drawings: Dict[str, str]) -> Tuple[Dict[str, UUID], List[str]]:
        self._require_transaction()
        lookup: Dict[str, UUID] = {}
        created: List[str] = []
        for norm, raw in drawings.items():
            existing = self.store.drawings.get((project_id, norm))
            if existing is None:
                existing = {"id": uuid4(), "drawing_no_norm": norm, "drawing_no_raw": raw}
                self.store.drawings[(project_id, norm)] = existing
                created.append(norm)
            lookup[norm] = existing["id"]
        return lookup, created

    def insert_components(self, records: List[ComponentRecord]) -> int:
        self._require_transaction()
        for record in records:
            key = (record.project_id, IdentityKey.from_record(record.component_type, record.identity_key))
            if key in self.store.identity_index:
                raise ValueError(f"duplicate key value violates unique constraint: {key[1]}")
            self.store.identity_index.add(key)
            self.store.components.append(record)
        return len(records)

    # ------------------------------------------------------------------
    # Seeding and inspection
    # ------------------------------------------------------------------

    def components_for(self, project_id: UUID) -> List[ComponentRecord]:
        return [record for record in self.store.components if record.project_id == project_id]

    def drawing(self, project_id: UUID, drawing_norm: str) -> Optional[Dict[str, Any]]:
        return self.store.drawings.get((project_id, drawing_norm))

    def dimension_names(self, project_id: UUID, dimension_type: str) -> List[str]:
        return sorted(name for (pid, name) in self.store.dimensions[dimension_type] if pid == project_id)

    def close(self):
        """Nothing to release; present for parity with SupabaseClient."""
