"""
Data models for storage layer.

Defines the inventory records, their enums, and the parsing rules used to
turn caller input and SQLite rows into typed values.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..errors import ValidationError


class ServerStatus(Enum):
    """Lifecycle status of a server. Any value may be set to any other."""
    ACTIVE = "ACTIVE"
    STANDBY = "STANDBY"
    TO_DECOM = "TO_DECOM"


class ServerPurpose(Enum):
    """What a server is used for."""
    PROD = "PROD"
    STAGING = "STAGING"
    DEV = "DEV"
    TEST = "TEST"


class BillingType(Enum):
    """How the provider bills the server."""
    HOURLY = "HOURLY"
    MONTHLY = "MONTHLY"
    SPOT = "SPOT"


@dataclass(frozen=True, repr=False)
class Secret:
    """Sensitive string (password, SSH key) that never shows up in reprs or logs.

    The value is stored verbatim; call reveal() to get it back.
    """
    value: str

    def reveal(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return "Secret('******')"

    def __str__(self) -> str:
        return "******"


def parse_enum(enum_cls, value: Any, field_name: str):
    """Coerce a string or enum member into enum_cls.

    Raises:
        ValidationError: If value is not a member of enum_cls
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.upper())
        except ValueError:
            pass
    valid = [member.value for member in enum_cls]
    raise ValidationError(f"'{field_name}' must be one of: {valid}", field_name)


def parse_date(value: Any, field_name: str) -> date:
    """Parse a calendar date from a date, datetime or ISO string.

    Raises:
        ValidationError: If value cannot be read as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError(f"'{field_name}' must be an ISO date, got {value!r}", field_name)


def parse_month(value: Any, field_name: str = "month") -> date:
    """Parse a calendar month and normalize it to the first day of that month.

    Accepts date, datetime, "YYYY-MM", "YYYY-MM-DD" and ISO timestamps.

    Raises:
        ValidationError: If value cannot be read as a month
    """
    if isinstance(value, str) and len(value.strip()) == 7:
        try:
            year, month = value.strip().split("-")
            return date(int(year), int(month), 1)
        except ValueError:
            raise ValidationError(f"'{field_name}' must be YYYY-MM, got {value!r}", field_name)
    parsed = parse_date(value, field_name)
    return parsed.replace(day=1)


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a decimal amount. Floats go through str() to avoid binary noise.

    Raises:
        ValidationError: If value is not numeric
    """
    if isinstance(value, bool):
        raise ValidationError(f"'{field_name}' must be a number", field_name)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"'{field_name}' must be a number, got {value!r}", field_name)
    else:
        raise ValidationError(f"'{field_name}' must be a number", field_name)
    if not result.is_finite():
        raise ValidationError(f"'{field_name}' must be a finite number", field_name)
    return result


def _timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _optional_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value is not None else None


def _optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _optional_secret(value: Optional[str]) -> Optional[Secret]:
    return Secret(value) if value is not None else None


@dataclass(frozen=True)
class ServerSummary:
    """The id, name and hostname of a server, used in cost snapshot listings."""
    id: int
    name: str
    hostname: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ServerSummary":
        return cls(id=row["id"], name=row["name"], hostname=row["hostname"])


@dataclass(frozen=True)
class Provider:
    """Hosting provider. `servers` and `server_count` are only set when requested."""
    id: int
    name: str
    console_url: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    servers: Optional[List["Server"]] = None
    server_count: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Provider":
        servers = row.get("servers")
        return cls(
            id=row["id"],
            name=row["name"],
            console_url=row["console_url"],
            notes=row["notes"],
            created_at=_timestamp(row["created_at"]),
            updated_at=_timestamp(row["updated_at"]),
            servers=[Server.from_row(s) for s in servers] if servers is not None else None,
            server_count=row.get("server_count"),
        )


@dataclass(frozen=True)
class Person:
    """Person responsible for servers. `servers_owned` is only set when requested."""
    id: int
    name: str
    email: Optional[str]
    telegram: Optional[str]
    created_at: datetime
    updated_at: datetime
    servers_owned: Optional[List["Server"]] = None
    server_count: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Person":
        servers = row.get("servers_owned")
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            telegram=row["telegram"],
            created_at=_timestamp(row["created_at"]),
            updated_at=_timestamp(row["updated_at"]),
            servers_owned=[Server.from_row(s) for s in servers] if servers is not None else None,
            server_count=row.get("server_count"),
        )


@dataclass(frozen=True)
class Server:
    """A machine in the inventory.

    `provider`, `owner` and `cost_snapshots` are populated only when the
    query asked for them; a None provider/owner on a loaded record means
    the server is unassigned.
    """
    id: int
    name: str
    hostname: str
    status: ServerStatus
    purpose: ServerPurpose
    billing_type: BillingType
    created_at: datetime
    updated_at: datetime
    ip_public: Optional[str] = None
    ip_private: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[Secret] = None
    ssh_key: Optional[Secret] = None
    cost_month_estimated: Optional[Decimal] = None
    decommission_at: Optional[date] = None
    provider_id: Optional[int] = None
    owner_id: Optional[int] = None
    os: Optional[str] = None
    cpu: Optional[str] = None
    ram: Optional[str] = None
    storage: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[str] = None
    account: Optional[str] = None
    provider: Optional[Provider] = None
    owner: Optional[Person] = None
    cost_snapshots: Optional[List["CostSnapshot"]] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Server":
        provider = row.get("provider")
        owner = row.get("owner")
        snapshots = row.get("cost_snapshots")
        return cls(
            id=row["id"],
            name=row["name"],
            hostname=row["hostname"],
            status=ServerStatus(row["status"]),
            purpose=ServerPurpose(row["purpose"]),
            billing_type=BillingType(row["billing_type"]),
            created_at=_timestamp(row["created_at"]),
            updated_at=_timestamp(row["updated_at"]),
            ip_public=row["ip_public"],
            ip_private=row["ip_private"],
            port=row["port"],
            username=row["username"],
            password=_optional_secret(row["password"]),
            ssh_key=_optional_secret(row["ssh_key"]),
            cost_month_estimated=_optional_decimal(row["cost_month_estimated"]),
            decommission_at=_optional_date(row["decommission_at"]),
            provider_id=row["provider_id"],
            owner_id=row["owner_id"],
            os=row["os"],
            cpu=row["cpu"],
            ram=row["ram"],
            storage=row["storage"],
            location=row["location"],
            description=row["description"],
            tags=row["tags"],
            account=row["account"],
            provider=Provider.from_row(provider) if provider is not None else None,
            owner=Person.from_row(owner) if owner is not None else None,
            cost_snapshots=(
                [CostSnapshot.from_row(s) for s in snapshots] if snapshots is not None else None
            ),
        )


@dataclass(frozen=True)
class CostSnapshot:
    """Cost of one server for one calendar month.

    `month` is always the first day of the month.
    """
    id: int
    server_id: int
    month: date
    cost_month: Decimal
    source: Optional[str]
    created_at: datetime
    updated_at: datetime
    server: Optional[Any] = None  # Server or ServerSummary

    @classmethod
    def from_row(cls, row: Mapping[str, Any], summary: bool = False) -> "CostSnapshot":
        server = row.get("server")
        if server is not None:
            server = ServerSummary.from_row(server) if summary else Server.from_row(server)
        return cls(
            id=row["id"],
            server_id=row["server_id"],
            month=date.fromisoformat(row["month"]),
            cost_month=Decimal(row["cost_month"]),
            source=row["source"],
            created_at=_timestamp(row["created_at"]),
            updated_at=_timestamp(row["updated_at"]),
            server=server,
        )


@dataclass(frozen=True)
class InventoryStats:
    """Fleet-wide counters for a dashboard view."""
    total_servers: int
    by_status: Dict[ServerStatus, int] = field(default_factory=dict)
    estimated_monthly_cost: Decimal = Decimal("0")

    def count(self, status: ServerStatus) -> int:
        """Number of servers in the given status."""
        return self.by_status.get(status, 0)
