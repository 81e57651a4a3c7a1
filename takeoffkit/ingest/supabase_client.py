"""
Postgres (Supabase) implementation of DatabaseClient for takeoff imports.

Talks to the project database over a direct psycopg2 connection. Supabase
REST/GraphQL API keys are not used; take the connection string from
Dashboard → Project Settings → Database, e.g.
postgresql://postgres:[password]@[host]:5432/postgres

Expected tables (each scoped by project_id):
- areas, systems, test_packages: (id, project_id, name), UNIQUE (project_id, name)
- drawings: (id, project_id, drawing_no_norm, drawing_no_raw), UNIQUE (project_id, drawing_no_norm)
- components: (id, project_id, component_type, drawing_id, progress_template_id,
  identity_key jsonb, attributes jsonb, area_id, system_id, test_package_id),
  UNIQUE (project_id, component_type, identity_key)
- progress_templates: (id, component_type)
"""

import logging
import os
from typing import Optional, Dict, Iterable, List, Set, Tuple
from uuid import UUID
import psycopg2
from psycopg2.extras import RealDictCursor, Json, execute_values
from psycopg2.pool import SimpleConnectionPool

from ..identity import IdentityKey
from ..models import ComponentRecord
from ..schema import DIMENSION_TABLES
from .import_executor import DatabaseClient

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432


class SupabaseClient(DatabaseClient):
    """
    DatabaseClient over a pooled Postgres connection.

    One pooled connection is checked out per transaction and returned on
    commit or rollback. The DSN comes from, in order: the ``db_url``
    argument, SUPABASE_DB_URL, or SUPABASE_DB_HOST/PORT/NAME/USER/PASSWORD
    (each overridable by the matching argument).
    """

    def __init__(
        self,
        db_url: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        minconn: int = 1,
        maxconn: int = 10
    ):
        self.db_url = db_url or os.getenv("SUPABASE_DB_URL") or self._dsn_from_parts(
            host=host or os.getenv("SUPABASE_DB_HOST"),
            port=port or int(os.getenv("SUPABASE_DB_PORT", str(DEFAULT_PORT))),
            database=database or os.getenv("SUPABASE_DB_NAME"),
            user=user or os.getenv("SUPABASE_DB_USER"),
            password=password or os.getenv("SUPABASE_DB_PASSWORD"),
        )
        self.pool_size = (minconn, maxconn)
        self._pool: Optional[SimpleConnectionPool] = None
        self._conn = None

    @staticmethod
    def _dsn_from_parts(host, port, database, user, password) -> str:
        missing = [name for name, value in (
            ("SUPABASE_DB_HOST", host),
            ("SUPABASE_DB_NAME", database),
            ("SUPABASE_DB_USER", user),
            ("SUPABASE_DB_PASSWORD", password),
        ) if not value]
        if missing:
            raise ValueError(
                f"Missing required connection parameters: {', '.join(missing)}. "
                f"Pass db_url or set SUPABASE_DB_URL."
            )
        return f"postgresql://{user}:{password}@{host}:{port or DEFAULT_PORT}/{database}"

    def _pool_or_create(self) -> SimpleConnectionPool:
        if self._pool is None:
            minconn, maxconn = self.pool_size
            self._pool = SimpleConnectionPool(minconn, maxconn, dsn=self.db_url)
        return self._pool

    def begin_transaction(self) -> None:
        if self._conn is not None:
            raise RuntimeError("Transaction already in progress")
        conn = self._pool_or_create().getconn()
        conn.autocommit = False
        self._conn = conn

    def _finish(self, commit: bool) -> None:
        if self._conn is None:
            raise RuntimeError("No transaction in progress")
        conn, self._conn = self._conn, None
        try:
            if commit:
                conn.commit()
            else:
                conn.rollback()
        finally:
            self._pool_or_create().putconn(conn)

    def commit_transaction(self) -> None:
        self._finish(commit=True)

    def rollback_transaction(self) -> None:
        self._finish(commit=False)

    def _get_cursor(self, dict_cursor: bool = True):
        if self._conn is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")
        return self._conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None)

    @staticmethod
    def _dimension_table(dimension_type: str) -> str:
        try:
            return DIMENSION_TABLES[dimension_type]
        except KeyError:
            raise ValueError(f"Unknown dimension type: {dimension_type}")

    def find_existing_identity_keys(
        self,
        project_id: UUID,
        keys: Iterable[IdentityKey]
    ) -> Set[IdentityKey]:
        """
        Batched identity key lookup, one query per component type.

        jsonb equality ignores key order, so a stored key matches its
        recomputed form regardless of how it was serialized.
        """
        by_type: Dict[str, List[IdentityKey]] = {}
        for key in keys:
            by_type.setdefault(key.component_type, []).append(key)

        found: Set[IdentityKey] = set()
        cursor = self._get_cursor()

        try:
            for component_type, type_keys in by_type.items():
                cursor.execute("""
                    SELECT identity_key FROM components
                    WHERE project_id = %s
                      AND component_type = %s
                      AND identity_key = ANY(%s::jsonb[])
                """, (str(project_id), component_type, [Json(k.to_record()) for k in type_keys]))

                for row in cursor.fetchall():
                    found.add(IdentityKey.from_record(component_type, row['identity_key']))

            return found

        finally:
            cursor.close()

    def find_dimensions(
        self,
        project_id: UUID,
        dimension_type: str,
        names: Iterable[str]
    ) -> Dict[str, UUID]:
        """Batched existence lookup of dimension names."""
        table = self._dimension_table(dimension_type)
        names = list(names)
        if not names:
            return {}

        cursor = self._get_cursor()

        try:
            cursor.execute(f"""
                SELECT id, name FROM {table}
                WHERE project_id = %s AND name = ANY(%s)
            """, (str(project_id), names))

            return {row['name']: UUID(str(row['id'])) for row in cursor.fetchall()}

        finally:
            cursor.close()

    def upsert_dimensions(
        self,
        project_id: UUID,
        dimension_type: str,
        names: Iterable[str]
    ) -> Tuple[Dict[str, UUID], List[str]]:
        """
        Insert missing dimension names and resolve all of them.

        ON CONFLICT DO NOTHING makes a concurrent insert of the same name a
        no-op; the follow-up SELECT resolves it to the existing row.
        """
        table = self._dimension_table(dimension_type)
        names = list(names)
        if not names:
            return {}, []

        cursor = self._get_cursor()

        try:
            inserted = execute_values(cursor, f"""
                INSERT INTO {table} (project_id, name)
                VALUES %s
                ON CONFLICT (project_id, name) DO NOTHING
                RETURNING name
            """, [(str(project_id), name) for name in names], fetch=True)
            created = [row['name'] for row in inserted]

        finally:
            cursor.close()

        lookup = self.find_dimensions(project_id, dimension_type, names)
        missing = [name for name in names if name not in lookup]
        if missing:
            raise RuntimeError(f"Could not resolve {dimension_type} names: {missing}")

        return lookup, created

    def find_drawings(
        self,
        project_id: UUID,
        drawing_norms: Iterable[str]
    ) -> Dict[str, UUID]:
        """Batched drawing lookup by normalized reference."""
        drawing_norms = list(drawing_norms)
        if not drawing_norms:
            return {}

        cursor = self._get_cursor()

        try:
            cursor.execute("""
                SELECT id, drawing_no_norm FROM drawings
                WHERE project_id = %s AND drawing_no_norm = ANY(%s)
            """, (str(project_id), drawing_norms))

            return {row['drawing_no_norm']: UUID(str(row['id'])) for row in cursor.fetchall()}

        finally:
            cursor.close()

    def upsert_drawings(
        self,
        project_id: UUID,
        drawings: Dict[str, str]
    ) -> Tuple[Dict[str, UUID], List[str]]:
        """Insert missing drawings (raw reference kept for display) and resolve all of them."""
        if not drawings:
            return {}, []

        cursor = self._get_cursor()

        try:
            inserted = execute_values(cursor, """
                INSERT INTO drawings (project_id, drawing_no_norm, drawing_no_raw)
                VALUES %s
                ON CONFLICT (project_id, drawing_no_norm) DO NOTHING
                RETURNING drawing_no_norm
            """, [(str(project_id), norm, raw) for norm, raw in drawings.items()], fetch=True)
            created = [row['drawing_no_norm'] for row in inserted]

        finally:
            cursor.close()

        lookup = self.find_drawings(project_id, drawings.keys())
        missing = [norm for norm in drawings if norm not in lookup]
        if missing:
            raise RuntimeError(f"Could not resolve drawings: {missing}")

        return lookup, created

    def get_progress_templates(self) -> Dict[str, UUID]:
        """Progress template per lower-cased component type."""
        cursor = self._get_cursor()

        try:
            cursor.execute("""
                SELECT id, component_type FROM progress_templates
            """)

            return {
                str(row['component_type']).lower(): UUID(str(row['id']))
                for row in cursor.fetchall()
            }

        finally:
            cursor.close()

    def insert_components(
        self,
        records: List[ComponentRecord]
    ) -> int:
        """Insert one batch of components. A duplicate identity key raises IntegrityError."""
        if not records:
            return 0

        cursor = self._get_cursor(dict_cursor=False)

        def _uuid(value: Optional[UUID]) -> Optional[str]:
            return str(value) if value else None

        try:
            execute_values(cursor, """
                INSERT INTO components (
                    project_id, component_type, drawing_id, progress_template_id,
                    identity_key, attributes, area_id, system_id, test_package_id
                )
                VALUES %s
            """, [
                (
                    str(r.project_id),
                    r.component_type,
                    str(r.drawing_id),
                    _uuid(r.progress_template_id),
                    Json(r.identity_key),
                    Json(r.attributes),
                    _uuid(r.area_id),
                    _uuid(r.system_id),
                    _uuid(r.test_package_id),
                )
                for r in records
            ], page_size=len(records))

            return len(records)

        except psycopg2.IntegrityError as e:
            logger.error(f"Component insert rejected by constraint: {e}")
            raise

        finally:
            cursor.close()

    def close(self):
        """Release every pooled connection."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
