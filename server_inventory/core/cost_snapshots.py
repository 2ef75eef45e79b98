"""
Cost snapshot ledger.

Monthly cost records per server. Several snapshots may exist for the same
server and month; listings order them by month, then newest entry first.
"""

from typing import Any, Dict, List, Mapping, Optional

from ..errors import ConstraintViolation, ValidationError
from ..storage.gateway import Include, PersistenceGateway
from ..storage.models import CostSnapshot, parse_decimal, parse_month
from .validation import optional_id, optional_text, reject_unknown_fields

SNAPSHOT_FIELDS = ("server_id", "month", "cost_month", "source")

_NEWEST_MONTH_FIRST = (("month", "desc"), ("id", "desc"))
_SERVER_SUMMARY = Include("server", columns=("id", "name", "hostname"))


def _cost(value: Any) -> str:
    amount = parse_decimal(value, "cost_month")
    if amount < 0:
        raise ValidationError(f"'cost_month' must be >= 0, got {amount}", "cost_month")
    return str(amount)


def _to_columns(fields: Mapping[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None and key != "source":
            raise ConstraintViolation(f"CostSnapshot requires: {key}", key)
        if key == "server_id":
            values[key] = optional_id(value, key)
        elif key == "month":
            values[key] = parse_month(value).isoformat()
        elif key == "cost_month":
            values[key] = _cost(value)
        else:
            values[key] = optional_text(value, key)
    return values


class CostSnapshotLedger:
    """Historical monthly costs of servers."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def create(self, server_id: int, month: Any, cost_month: Any,
               source: Optional[str] = None) -> CostSnapshot:
        """Record the cost of a server for a month.

        Args:
            server_id: Server the cost belongs to
            month: date, datetime, "YYYY-MM" or ISO date; stored as the 1st of the month
            cost_month: Non-negative amount
            source: Optional provenance label such as "AWS Bill"

        Returns:
            The snapshot with its full server record

        Raises:
            ConstraintViolation: If server_id dangles or a required value is missing
            ValidationError: If month or cost_month is malformed
        """
        values = _to_columns({
            "server_id": server_id,
            "month": month,
            "cost_month": cost_month,
            "source": source,
        })
        row = self.gateway.create("cost_snapshot", values, include=(Include("server"),))
        return CostSnapshot.from_row(row)

    def list(self) -> List[CostSnapshot]:
        """All snapshots, newest month first, with a server summary."""
        rows = self.gateway.read_many(
            "cost_snapshot",
            order_by=_NEWEST_MONTH_FIRST,
            include=(_SERVER_SUMMARY,),
        )
        return [CostSnapshot.from_row(row, summary=True) for row in rows]

    def list_by_server(self, server_id: int) -> List[CostSnapshot]:
        """Snapshots of one server, newest month first.

        Returns an empty list for a server without snapshots.

        Raises:
            ConstraintViolation: If server_id does not reference an existing server
        """
        if not self.gateway.exists("server", server_id):
            raise ConstraintViolation(
                f"CostSnapshot.server_id references missing Server {server_id}", "server_id"
            )
        rows = self.gateway.read_many(
            "cost_snapshot",
            where={"server_id": server_id},
            order_by=_NEWEST_MONTH_FIRST,
            include=(_SERVER_SUMMARY,),
        )
        return [CostSnapshot.from_row(row, summary=True) for row in rows]

    def get(self, snapshot_id: int) -> CostSnapshot:
        """A snapshot with its full server record.

        Raises:
            NotFound: If snapshot_id does not exist
        """
        row = self.gateway.read_one("cost_snapshot", snapshot_id, include=(Include("server"),))
        return CostSnapshot.from_row(row)

    def update(self, snapshot_id: int, **fields: Any) -> CostSnapshot:
        """Change only the supplied fields; month is normalized like on create.

        Raises:
            NotFound: If snapshot_id does not exist
            ConstraintViolation: If server_id dangles
            ValidationError: If a field is unknown or malformed
        """
        reject_unknown_fields(fields, SNAPSHOT_FIELDS, "CostSnapshot")
        row = self.gateway.update(
            "cost_snapshot", snapshot_id, _to_columns(fields), include=(Include("server"),)
        )
        return CostSnapshot.from_row(row)

    def delete(self, snapshot_id: int) -> None:
        """Delete a snapshot.

        Raises:
            NotFound: If snapshot_id does not exist
        """
        self.gateway.delete("cost_snapshot", snapshot_id)
