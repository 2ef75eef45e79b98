"""
Unit tests for storage layer.

Tests schema creation and the persistence gateway: CRUD, relation
includes, counts, error mapping and foreign key policy.
"""

import os
import shutil
import tempfile

import pytest

from server_inventory.errors import ConstraintViolation, NotFound, StorageError
from server_inventory.storage.db import get_connection, initialize_schema
from server_inventory.storage.gateway import Count, Include, PersistenceGateway


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify tables are created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name NOT LIKE 'sqlite_%'
                    ORDER BY name
                """)
                tables = [row[0] for row in cursor.fetchall()]
                assert tables == ["cost_snapshots", "people", "providers", "servers"]

                cursor = conn.execute("PRAGMA table_info(cost_snapshots)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'id', 'server_id', 'month', 'cost_month', 'source',
                    'created_at', 'updated_at'
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Running the schema twice keeps existing data."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            gateway = PersistenceGateway(db_path)
            gateway.initialize_schema()
            gateway.create("provider", {"name": "Hetzner"})
            gateway.initialize_schema()

            assert len(gateway.read_many("provider")) == 1

    def test_foreign_keys_enabled(self):
        """Connections enforce foreign keys."""
        with tempfile.TemporaryDirectory() as temp_dir:
            conn = get_connection(os.path.join(temp_dir, "test.db"))
            try:
                assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
            finally:
                conn.close()

    def test_unopenable_database_raises_storage_error(self):
        """A path inside a missing directory surfaces as StorageError."""
        with tempfile.TemporaryDirectory() as temp_dir:
            gateway = PersistenceGateway(os.path.join(temp_dir, "missing", "test.db"))
            with pytest.raises(StorageError):
                gateway.initialize_schema()


class GatewayTestCase:
    """Shared temp database for gateway tests."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.gateway = PersistenceGateway(os.path.join(self.temp_dir, "test.db"))
        self.gateway.initialize_schema()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _server(self, name, **values):
        values.setdefault("hostname", f"{name}.local")
        return self.gateway.create("server", dict(name=name, **values))


class TestGatewayWrites(GatewayTestCase):
    """Test create, update and delete."""

    def test_create_sets_timestamps(self):
        """Creates set created_at and updated_at to the same time."""
        record = self.gateway.create("provider", {"name": "Hetzner", "notes": "EU"})

        assert record["id"] == 1
        assert record["name"] == "Hetzner"
        assert record["notes"] == "EU"
        assert record["console_url"] is None
        assert record["created_at"] == record["updated_at"]

    def test_create_applies_schema_defaults(self):
        """Enum columns fall back to their defaults."""
        record = self._server("web-1")

        assert record["status"] == "ACTIVE"
        assert record["purpose"] == "PROD"
        assert record["billing_type"] == "MONTHLY"

    def test_create_missing_required_column(self):
        """A missing required column fails without writing."""
        with pytest.raises(ConstraintViolation, match="hostname") as exc_info:
            self.gateway.create("server", {"name": "web-1"})

        assert exc_info.value.field == "hostname"
        assert self.gateway.read_many("server") == []

    def test_create_with_dangling_foreign_key(self):
        """A foreign key to a missing row fails without writing."""
        with pytest.raises(ConstraintViolation, match="missing Provider 99"):
            self._server("web-1", provider_id=99)

        assert self.gateway.read_many("server") == []

    def test_unknown_column_is_programming_error(self):
        """Unknown columns are rejected before any SQL runs."""
        with pytest.raises(ValueError, match="Unknown Provider columns"):
            self.gateway.create("provider", {"name": "x", "region": "eu"})

    def test_unknown_entity(self):
        """Unknown entity kinds are rejected."""
        with pytest.raises(ValueError, match="Unknown entity"):
            self.gateway.read_many("datacenter")

    def test_update_changes_only_given_columns(self):
        """Update leaves other columns alone and refreshes updated_at."""
        created = self.gateway.create("provider", {"name": "Hetzner", "notes": "EU"})
        updated = self.gateway.update("provider", created["id"], {"notes": "Germany"})

        assert updated["notes"] == "Germany"
        assert updated["name"] == "Hetzner"
        assert updated["created_at"] == created["created_at"]
        assert updated["updated_at"] >= created["updated_at"]

    def test_update_missing_record(self):
        """Updating a missing id raises NotFound."""
        with pytest.raises(NotFound) as exc_info:
            self.gateway.update("provider", 42, {"name": "x"})

        assert exc_info.value.entity == "Provider"
        assert exc_info.value.record_id == 42

    def test_update_cannot_clear_required_column(self):
        """Setting a required column to None is a constraint violation."""
        created = self.gateway.create("provider", {"name": "Hetzner"})

        with pytest.raises(ConstraintViolation):
            self.gateway.update("provider", created["id"], {"name": None})

    def test_update_with_dangling_foreign_key_leaves_row(self):
        """A dangling foreign key on update writes nothing."""
        server = self._server("web-1")

        with pytest.raises(ConstraintViolation):
            self.gateway.update("server", server["id"], {"owner_id": 7, "name": "web-2"})

        assert self.gateway.read_one("server", server["id"])["name"] == "web-1"

    def test_delete_twice(self):
        """Delete is not idempotent: the second call raises NotFound."""
        created = self.gateway.create("person", {"name": "Alice"})
        self.gateway.delete("person", created["id"])

        with pytest.raises(NotFound):
            self.gateway.read_one("person", created["id"])
        with pytest.raises(NotFound):
            self.gateway.delete("person", created["id"])


class TestForeignKeyPolicy(GatewayTestCase):
    """Test what happens to dependents on delete."""

    def test_deleting_provider_unassigns_servers(self):
        """Servers keep existing with provider_id cleared."""
        provider = self.gateway.create("provider", {"name": "Hetzner"})
        server = self._server("web-1", provider_id=provider["id"])

        self.gateway.delete("provider", provider["id"])

        assert self.gateway.read_one("server", server["id"])["provider_id"] is None

    def test_deleting_person_unassigns_servers(self):
        """Servers keep existing with owner_id cleared."""
        person = self.gateway.create("person", {"name": "Alice"})
        server = self._server("web-1", owner_id=person["id"])

        self.gateway.delete("person", person["id"])

        assert self.gateway.read_one("server", server["id"])["owner_id"] is None

    def test_deleting_server_removes_snapshots(self):
        """Cost snapshots go away with their server."""
        server = self._server("web-1")
        snapshot = self.gateway.create(
            "cost_snapshot",
            {"server_id": server["id"], "month": "2024-01-01", "cost_month": "10"},
        )

        self.gateway.delete("server", server["id"])

        with pytest.raises(NotFound):
            self.gateway.read_one("cost_snapshot", snapshot["id"])


class TestGatewayReads(GatewayTestCase):
    """Test filtered reads, includes and counts."""

    def _snapshot(self, server_id, month, cost):
        return self.gateway.create(
            "cost_snapshot",
            {"server_id": server_id, "month": month, "cost_month": cost},
        )

    def test_read_many_filter_and_order(self):
        """Equality filters, NULL filters and ordering."""
        provider = self.gateway.create("provider", {"name": "Hetzner"})
        self._server("b", provider_id=provider["id"])
        self._server("a", provider_id=provider["id"])
        self._server("c")

        assigned = self.gateway.read_many(
            "server", where={"provider_id": provider["id"]}, order_by=(("name", "asc"),)
        )
        unassigned = self.gateway.read_many("server", where={"provider_id": None})

        assert [r["name"] for r in assigned] == ["a", "b"]
        assert [r["name"] for r in unassigned] == ["c"]

    def test_read_many_limit(self):
        """Limit caps the number of rows."""
        for name in ("a", "b", "c"):
            self._server(name)

        assert len(self.gateway.read_many("server", limit=2)) == 2

    def test_invalid_sort_direction(self):
        """Only asc and desc are accepted."""
        with pytest.raises(ValueError, match="Invalid sort direction"):
            self.gateway.read_many("server", order_by=(("name", "sideways"),))

    def test_unknown_sort_column(self):
        """Sort columns are checked against the table."""
        with pytest.raises(ValueError):
            self.gateway.read_many("server", order_by=(("name; DROP TABLE servers", "asc"),))

    def test_include_to_one(self):
        """To-one relations resolve to the related record or None."""
        provider = self.gateway.create("provider", {"name": "Hetzner"})
        assigned = self._server("web-1", provider_id=provider["id"])
        orphan = self._server("web-2")

        rows = self.gateway.read_many(
            "server", order_by=(("id", "asc"),), include=(Include("provider"),)
        )

        assert rows[0]["id"] == assigned["id"]
        assert rows[0]["provider"]["name"] == "Hetzner"
        assert rows[1]["id"] == orphan["id"]
        assert rows[1]["provider"] is None

    def test_include_to_many_with_order_and_limit(self):
        """To-many relations are ordered and limited per parent."""
        first = self._server("web-1")
        second = self._server("web-2")
        self._snapshot(first["id"], "2024-01-01", "10")
        self._snapshot(first["id"], "2024-03-01", "30")
        self._snapshot(first["id"], "2024-02-01", "20")
        self._snapshot(second["id"], "2024-05-01", "50")

        include = Include("cost_snapshots", order_by=(("month", "desc"),))
        full = self.gateway.read_one("server", first["id"], include=(include,))
        latest = self.gateway.read_many(
            "server",
            order_by=(("id", "asc"),),
            include=(Include("cost_snapshots", order_by=(("month", "desc"),), limit=1),),
        )

        assert [s["month"] for s in full["cost_snapshots"]] == [
            "2024-03-01", "2024-02-01", "2024-01-01"
        ]
        assert [s["cost_month"] for s in latest[0]["cost_snapshots"]] == ["30"]
        assert [s["cost_month"] for s in latest[1]["cost_snapshots"]] == ["50"]

    def test_include_to_many_empty(self):
        """Parents without children get an empty list."""
        server = self._server("web-1")

        record = self.gateway.read_one("server", server["id"], include=(Include("cost_snapshots"),))

        assert record["cost_snapshots"] == []

    def test_nested_include(self):
        """Includes can reach through a relation."""
        provider = self.gateway.create("provider", {"name": "Hetzner"})
        person = self.gateway.create("person", {"name": "Alice"})
        self._server("web-1", provider_id=provider["id"], owner_id=person["id"])

        record = self.gateway.read_one(
            "person", person["id"],
            include=(Include("servers_owned", include=(Include("provider"),)),),
        )

        assert record["servers_owned"][0]["provider"]["name"] == "Hetzner"

    def test_include_column_projection(self):
        """Included records can be restricted to a few columns."""
        server = self._server("web-1")
        self._snapshot(server["id"], "2024-01-01", "10")

        rows = self.gateway.read_many(
            "cost_snapshot",
            include=(Include("server", columns=("id", "name", "hostname")),),
        )

        assert rows[0]["server"] == {"id": server["id"], "name": "web-1", "hostname": "web-1.local"}

    def test_unknown_relation(self):
        """Unknown relation names are rejected."""
        self.gateway.create("provider", {"name": "Hetzner"})

        with pytest.raises(ValueError, match="Unknown Provider relation"):
            self.gateway.read_many("provider", include=(Include("accounts"),))

    def test_counts(self):
        """Counts annotate every record, zero included."""
        busy = self.gateway.create("provider", {"name": "Hetzner"})
        idle = self.gateway.create("provider", {"name": "OVH"})
        self._server("a", provider_id=busy["id"])
        self._server("b", provider_id=busy["id"])

        rows = self.gateway.read_many(
            "provider", order_by=(("name", "asc"),), counts=(Count("servers", "server_count"),)
        )

        assert [(r["name"], r["server_count"]) for r in rows] == [("Hetzner", 2), ("OVH", 0)]
        assert idle["id"] == rows[1]["id"]

    def test_count_requires_to_many_relation(self):
        """Counting a to-one relation is a programming error."""
        self._server("a")

        with pytest.raises(ValueError, match="Cannot count"):
            self.gateway.read_many("server", counts=(Count("provider", "n"),))

    def test_exists(self):
        """exists reports presence by id."""
        provider = self.gateway.create("provider", {"name": "Hetzner"})

        assert self.gateway.exists("provider", provider["id"])
        assert not self.gateway.exists("provider", provider["id"] + 1)
