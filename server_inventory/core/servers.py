"""
Server registry.

CRUD and listing for servers. Provider and owner are optional weak
references; cost snapshots belong to the server and are removed with it.

Status, purpose and billing type are free-form: any value may be replaced
by any other on update.
"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union

from ..errors import ConstraintViolation, ValidationError
from ..storage.gateway import Include, PersistenceGateway
from ..storage.models import (
    BillingType,
    InventoryStats,
    Secret,
    Server,
    ServerPurpose,
    ServerStatus,
    parse_date,
    parse_decimal,
    parse_enum,
)
from .validation import optional_id, optional_text, reject_unknown_fields, require_text

REQUIRED_FIELDS = ("name", "hostname")
TEXT_FIELDS = (
    "ip_public", "ip_private", "username",
    "os", "cpu", "ram", "storage", "location",
    "description", "tags", "account",
)
SECRET_FIELDS = ("password", "ssh_key")
ENUM_FIELDS = {
    "status": ServerStatus,
    "purpose": ServerPurpose,
    "billing_type": BillingType,
}
SERVER_FIELDS = (
    REQUIRED_FIELDS + TEXT_FIELDS + SECRET_FIELDS + tuple(ENUM_FIELDS)
    + ("port", "cost_month_estimated", "decommission_at", "provider_id", "owner_id")
)

_NEWEST_MONTH_FIRST = (("month", "desc"), ("id", "desc"))
_FULL_HISTORY = (
    Include("provider"),
    Include("owner"),
    Include("cost_snapshots", order_by=_NEWEST_MONTH_FIRST),
)
_LATEST_SNAPSHOT = (
    Include("provider"),
    Include("owner"),
    Include("cost_snapshots", order_by=_NEWEST_MONTH_FIRST, limit=1),
)


def _port(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("'port' must be an integer", "port")
    if not 1 <= value <= 65535:
        raise ValidationError(f"'port' must be between 1 and 65535, got {value}", "port")
    return value


def _secret(value: Union[str, Secret, None], field: str) -> Optional[str]:
    if isinstance(value, Secret):
        return value.reveal()
    return optional_text(value, field)


def _to_columns(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate caller fields and convert them to column values."""
    values: Dict[str, Any] = {}
    for key, value in fields.items():
        if key in REQUIRED_FIELDS:
            values[key] = require_text(value, key, "Server")
        elif key in TEXT_FIELDS:
            values[key] = optional_text(value, key)
        elif key in SECRET_FIELDS:
            values[key] = _secret(value, key)
        elif key in ENUM_FIELDS:
            if value is None:
                raise ConstraintViolation(f"Server requires: {key}", key)
            values[key] = parse_enum(ENUM_FIELDS[key], value, key).value
        elif key == "port":
            values[key] = _port(value)
        elif key == "cost_month_estimated":
            values[key] = str(parse_decimal(value, key)) if value is not None else None
        elif key == "decommission_at":
            values[key] = parse_date(value, key).isoformat() if value is not None else None
        else:
            values[key] = optional_id(value, key)
    return values


class ServerRegistry:
    """Servers with their provider, owner and cost history."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def create(self, **fields: Any) -> Server:
        """Create a server. name and hostname are required.

        Enum fields default to ACTIVE / PROD / MONTHLY when omitted.

        Returns:
            The server with provider, owner and cost_snapshots populated

        Raises:
            ConstraintViolation: If name/hostname is missing or provider_id/owner_id dangles
            ValidationError: If a field is unknown or malformed
        """
        reject_unknown_fields(fields, SERVER_FIELDS, "Server")
        for key in REQUIRED_FIELDS:
            fields.setdefault(key, None)
        row = self.gateway.create("server", _to_columns(fields), include=_FULL_HISTORY)
        return Server.from_row(row)

    def list(self, status: Optional[Union[ServerStatus, str]] = None) -> List[Server]:
        """Servers newest first, each with only its most recent cost snapshot.

        Args:
            status: Optional status filter
        """
        where = None
        if status is not None:
            where = {"status": parse_enum(ServerStatus, status, "status").value}
        rows = self.gateway.read_many(
            "server",
            where=where,
            order_by=(("created_at", "desc"), ("id", "desc")),
            include=_LATEST_SNAPSHOT,
        )
        return [Server.from_row(row) for row in rows]

    def get(self, server_id: int) -> Server:
        """A server with provider, owner and its full cost history, newest month first.

        Raises:
            NotFound: If server_id does not exist
        """
        return Server.from_row(self.gateway.read_one("server", server_id, include=_FULL_HISTORY))

    def update(self, server_id: int, **fields: Any) -> Server:
        """Change only the supplied fields. Passing None clears an optional field.

        Raises:
            NotFound: If server_id does not exist
            ConstraintViolation: If provider_id/owner_id dangles or a required field is cleared
            ValidationError: If a field is unknown or malformed
        """
        reject_unknown_fields(fields, SERVER_FIELDS, "Server")
        row = self.gateway.update("server", server_id, _to_columns(fields), include=_FULL_HISTORY)
        return Server.from_row(row)

    def delete(self, server_id: int) -> None:
        """Delete a server together with its cost snapshots.

        Raises:
            NotFound: If server_id does not exist
        """
        self.gateway.delete("server", server_id)

    def stats(self) -> InventoryStats:
        """Server counts per status and the total estimated monthly cost."""
        rows = self.gateway.read_many("server")
        by_status = {status: 0 for status in ServerStatus}
        total = Decimal("0")
        for row in rows:
            by_status[ServerStatus(row["status"])] += 1
            if row["cost_month_estimated"] is not None:
                total += Decimal(row["cost_month_estimated"])
        return InventoryStats(
            total_servers=len(rows),
            by_status=by_status,
            estimated_monthly_cost=total,
        )
