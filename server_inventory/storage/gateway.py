"""
Persistence gateway.

The only component that talks to SQLite. Registries describe what they want
(entity, filters, ordering, relations to include) and the gateway turns that
into SQL, loads the requested relations and returns plain dict records.

Failures surface as NotFound, ConstraintViolation or StorageError; the
gateway holds no business rules beyond structural integrity.
"""

import logging
import sqlite3
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import ConstraintViolation, NotFound, StorageError
from .db import DEFAULT_DB_PATH, get_connection, initialize_schema

logger = logging.getLogger(__name__)

# Stays under SQLITE_MAX_VARIABLE_NUMBER on old builds
_IN_CHUNK = 500

Record = Dict[str, Any]
OrderBy = Sequence[Tuple[str, str]]


@dataclass(frozen=True)
class Relation:
    """A link from one entity to another.

    For kind "one" the foreign key column lives on the source row; for
    kind "many" it lives on the target rows.
    """
    target: str
    kind: str
    column: str


@dataclass(frozen=True)
class EntitySpec:
    """Table layout of one entity kind."""
    label: str
    table: str
    columns: Tuple[str, ...]
    required: Tuple[str, ...] = ()
    foreign_keys: Mapping[str, str] = field(default_factory=dict)
    relations: Mapping[str, Relation] = field(default_factory=dict)

    @property
    def all_columns(self) -> Tuple[str, ...]:
        return ("id",) + self.columns + ("created_at", "updated_at")


ENTITIES: Dict[str, EntitySpec] = {
    "provider": EntitySpec(
        label="Provider",
        table="providers",
        columns=("name", "console_url", "notes"),
        required=("name",),
        relations={"servers": Relation("server", "many", "provider_id")},
    ),
    "person": EntitySpec(
        label="Person",
        table="people",
        columns=("name", "email", "telegram"),
        required=("name",),
        relations={"servers_owned": Relation("server", "many", "owner_id")},
    ),
    "server": EntitySpec(
        label="Server",
        table="servers",
        columns=(
            "name", "hostname", "ip_public", "ip_private", "port",
            "username", "password", "ssh_key",
            "status", "purpose", "billing_type",
            "cost_month_estimated", "decommission_at",
            "provider_id", "owner_id",
            "os", "cpu", "ram", "storage", "location",
            "description", "tags", "account",
        ),
        required=("name", "hostname"),
        foreign_keys={"provider_id": "provider", "owner_id": "person"},
        relations={
            "provider": Relation("provider", "one", "provider_id"),
            "owner": Relation("person", "one", "owner_id"),
            "cost_snapshots": Relation("cost_snapshot", "many", "server_id"),
        },
    ),
    "cost_snapshot": EntitySpec(
        label="CostSnapshot",
        table="cost_snapshots",
        columns=("server_id", "month", "cost_month", "source"),
        required=("server_id", "month", "cost_month"),
        foreign_keys={"server_id": "server"},
        relations={"server": Relation("server", "one", "server_id")},
    ),
}


@dataclass(frozen=True)
class Include:
    """Request to populate a relation on every returned record.

    Args:
        relation: Relation name on the parent entity (e.g. "cost_snapshots")
        order_by: (column, "asc"|"desc") pairs for to-many relations
        limit: Keep at most this many related rows per parent
        columns: Restrict the related records to these columns
        include: Nested includes on the related entity
    """
    relation: str
    order_by: OrderBy = ()
    limit: Optional[int] = None
    columns: Optional[Tuple[str, ...]] = None
    include: Tuple["Include", ...] = ()


@dataclass(frozen=True)
class Count:
    """Request to annotate every returned record with the size of a to-many relation."""
    relation: str
    alias: str


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _entity(name: str) -> EntitySpec:
    try:
        return ENTITIES[name]
    except KeyError:
        raise ValueError(f"Unknown entity: {name}")


def _check_columns(spec: EntitySpec, names, allowed: Optional[Sequence[str]] = None) -> None:
    allowed_names = set(allowed if allowed is not None else spec.columns)
    unknown = set(names) - allowed_names
    if unknown:
        raise ValueError(f"Unknown {spec.label} columns: {sorted(unknown)}")


def _order_clause(spec: EntitySpec, order_by: OrderBy) -> str:
    if not order_by:
        return ""
    parts = []
    for column, direction in order_by:
        _check_columns(spec, [column], spec.all_columns)
        if direction.lower() not in ("asc", "desc"):
            raise ValueError(f"Invalid sort direction: {direction}")
        parts.append(f"{column} {direction.upper()}")
    return " ORDER BY " + ", ".join(parts)


def _chunks(values: Sequence[Any], size: int = _IN_CHUNK) -> Iterator[Sequence[Any]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class PersistenceGateway:
    """CRUD over the inventory tables with declarative relation loading.

    Every call opens its own connection and closes it before returning, so
    one gateway can be shared by concurrent callers. Each write runs in a
    single transaction.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the gateway with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize_schema(self) -> None:
        """Create the inventory tables if they don't exist."""
        try:
            initialize_schema(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize schema at {self.db_path}: {e}") from e

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ConstraintViolation(str(e)) from e
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Writes

    def create(self, entity: str, values: Mapping[str, Any],
               include: Sequence[Include] = ()) -> Record:
        """Insert a record and return it with the requested relations.

        Raises:
            ConstraintViolation: If a required column is missing or a foreign key dangles
        """
        spec = _entity(entity)
        _check_columns(spec, values)
        missing = [c for c in spec.required if values.get(c) is None]
        if missing:
            raise ConstraintViolation(
                f"{spec.label} requires: {', '.join(missing)}", missing[0]
            )

        now = _now()
        columns = list(values) + ["created_at", "updated_at"]
        params = list(values.values()) + [now, now]
        placeholders = ", ".join("?" for _ in columns)

        with self._session() as conn:
            self._check_foreign_keys(conn, spec, values)
            cursor = conn.execute(
                f"INSERT INTO {spec.table} ({', '.join(columns)}) VALUES ({placeholders})",
                params,
            )
            record_id = cursor.lastrowid
            record = self._fetch_one(conn, spec, record_id, include)
        logger.debug("Created %s %s", spec.label, record_id)
        return record

    def update(self, entity: str, record_id: int, values: Mapping[str, Any],
               include: Sequence[Include] = ()) -> Record:
        """Change only the supplied columns of a record and return it.

        Raises:
            NotFound: If record_id does not exist
            ConstraintViolation: If a required column is cleared or a foreign key dangles
        """
        spec = _entity(entity)
        _check_columns(spec, values)
        cleared = [c for c in spec.required if c in values and values[c] is None]
        if cleared:
            raise ConstraintViolation(
                f"{spec.label} requires: {', '.join(cleared)}", cleared[0]
            )

        assignments = [f"{column} = ?" for column in values] + ["updated_at = ?"]
        params = list(values.values()) + [_now(), record_id]

        with self._session() as conn:
            if not self._exists(conn, spec, record_id):
                raise NotFound(spec.label, record_id)
            self._check_foreign_keys(conn, spec, values)
            conn.execute(
                f"UPDATE {spec.table} SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            record = self._fetch_one(conn, spec, record_id, include)
        logger.debug("Updated %s %s: %s", spec.label, record_id, sorted(values))
        return record

    def delete(self, entity: str, record_id: int) -> None:
        """Delete a record. Dependent rows follow the schema's foreign key policy.

        Raises:
            NotFound: If record_id does not exist
        """
        spec = _entity(entity)
        with self._session() as conn:
            cursor = conn.execute(f"DELETE FROM {spec.table} WHERE id = ?", (record_id,))
            if cursor.rowcount == 0:
                raise NotFound(spec.label, record_id)
        logger.debug("Deleted %s %s", spec.label, record_id)

    # Reads

    def exists(self, entity: str, record_id: int) -> bool:
        """Check whether a record with this id exists."""
        spec = _entity(entity)
        with self._session() as conn:
            return self._exists(conn, spec, record_id)

    def read_one(self, entity: str, record_id: int,
                 include: Sequence[Include] = ()) -> Record:
        """Fetch a record by id with the requested relations.

        Raises:
            NotFound: If record_id does not exist
        """
        spec = _entity(entity)
        with self._session() as conn:
            return self._fetch_one(conn, spec, record_id, include)

    def read_many(
        self,
        entity: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: OrderBy = (),
        limit: Optional[int] = None,
        include: Sequence[Include] = (),
        counts: Sequence[Count] = (),
    ) -> List[Record]:
        """Fetch records matching equality filters.

        Args:
            entity: Entity kind
            where: Column -> value equality filters (None matches NULL)
            order_by: (column, "asc"|"desc") pairs
            limit: Maximum number of records to return
            include: Relations to populate
            counts: To-many relation sizes to annotate

        Returns:
            List of records in the requested order
        """
        spec = _entity(entity)
        query = f"SELECT {', '.join(spec.all_columns)} FROM {spec.table}"
        params: List[Any] = []
        if where:
            _check_columns(spec, where, spec.all_columns)
            conditions = []
            for column, value in where.items():
                if value is None:
                    conditions.append(f"{column} IS NULL")
                else:
                    conditions.append(f"{column} = ?")
                    params.append(value)
            query += " WHERE " + " AND ".join(conditions)
        query += _order_clause(spec, order_by)
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._session() as conn:
            rows = [dict(row) for row in conn.execute(query, params).fetchall()]
            self._load_includes(conn, spec, rows, include)
            self._load_counts(conn, spec, rows, counts)
        return rows

    # Internals

    def _exists(self, conn: sqlite3.Connection, spec: EntitySpec, record_id: Any) -> bool:
        row = conn.execute(
            f"SELECT 1 FROM {spec.table} WHERE id = ?", (record_id,)
        ).fetchone()
        return row is not None

    def _check_foreign_keys(self, conn: sqlite3.Connection, spec: EntitySpec,
                            values: Mapping[str, Any]) -> None:
        for column, target_name in spec.foreign_keys.items():
            value = values.get(column)
            if value is None:
                continue
            target = ENTITIES[target_name]
            if not self._exists(conn, target, value):
                raise ConstraintViolation(
                    f"{spec.label}.{column} references missing {target.label} {value}",
                    column,
                )

    def _fetch_one(self, conn: sqlite3.Connection, spec: EntitySpec, record_id: Any,
                   include: Sequence[Include]) -> Record:
        row = conn.execute(
            f"SELECT {', '.join(spec.all_columns)} FROM {spec.table} WHERE id = ?",
            (record_id,),
        ).fetchone()
        if row is None:
            raise NotFound(spec.label, record_id)
        records = [dict(row)]
        self._load_includes(conn, spec, records, include)
        return records[0]

    def _select_in(self, conn: sqlite3.Connection, spec: EntitySpec, column: str,
                   keys: Sequence[Any], order_by: OrderBy) -> List[Record]:
        if not keys:
            return []
        order = _order_clause(spec, order_by)
        rows: List[Record] = []
        for chunk in _chunks(list(keys)):
            placeholders = ", ".join("?" for _ in chunk)
            query = (
                f"SELECT {', '.join(spec.all_columns)} FROM {spec.table} "
                f"WHERE {column} IN ({placeholders}){order}"
            )
            rows.extend(dict(row) for row in conn.execute(query, list(chunk)).fetchall())
        if order_by and len(keys) > _IN_CHUNK:
            # each chunk came back sorted on its own
            for column_name, direction in reversed(list(order_by)):
                rows.sort(key=lambda r: (r[column_name] is None, r[column_name]),
                          reverse=direction.lower() == "desc")
        return rows

    def _load_includes(self, conn: sqlite3.Connection, spec: EntitySpec,
                       rows: List[Record], include: Sequence[Include]) -> None:
        if not rows:
            return
        for inc in include:
            relation = spec.relations.get(inc.relation)
            if relation is None:
                raise ValueError(f"Unknown {spec.label} relation: {inc.relation}")
            target = ENTITIES[relation.target]
            if inc.columns is not None:
                _check_columns(target, inc.columns, target.all_columns)

            if relation.kind == "one":
                keys = sorted({r[relation.column] for r in rows if r[relation.column] is not None})
                related = self._select_in(conn, target, "id", keys, ())
                self._load_includes(conn, target, related, inc.include)
                by_id = {item["id"]: _project(item, inc) for item in related}
                for row in rows:
                    row[inc.relation] = by_id.get(row[relation.column])
            else:
                keys = [r["id"] for r in rows]
                related = self._select_in(conn, target, relation.column, keys, inc.order_by)
                self._load_includes(conn, target, related, inc.include)
                grouped: Dict[Any, List[Record]] = defaultdict(list)
                for item in related:
                    grouped[item[relation.column]].append(_project(item, inc))
                for row in rows:
                    children = grouped.get(row["id"], [])
                    row[inc.relation] = children[:inc.limit] if inc.limit is not None else children

    def _load_counts(self, conn: sqlite3.Connection, spec: EntitySpec,
                     rows: List[Record], counts: Sequence[Count]) -> None:
        if not rows:
            return
        keys = [r["id"] for r in rows]
        for count in counts:
            relation = spec.relations.get(count.relation)
            if relation is None or relation.kind != "many":
                raise ValueError(f"Cannot count {spec.label} relation: {count.relation}")
            target = ENTITIES[relation.target]
            totals: Dict[Any, int] = {}
            for chunk in _chunks(keys):
                placeholders = ", ".join("?" for _ in chunk)
                cursor = conn.execute(
                    f"SELECT {relation.column}, COUNT(*) FROM {target.table} "
                    f"WHERE {relation.column} IN ({placeholders}) GROUP BY {relation.column}",
                    list(chunk),
                )
                totals.update({key: total for key, total in cursor.fetchall()})
            for row in rows:
                row[count.alias] = totals.get(row["id"], 0)


def _project(record: Record, inc: Include) -> Record:
    if inc.columns is None:
        return record
    keep = set(inc.columns) | {nested.relation for nested in inc.include}
    return {key: value for key, value in record.items() if key in keep}
