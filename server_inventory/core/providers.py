"""
Provider registry.

CRUD and listing for hosting providers. Deleting a provider leaves its
servers in place with provider_id cleared.
"""

from typing import Any, List, Optional

from ..storage.gateway import Count, Include, PersistenceGateway
from ..storage.models import Provider
from .validation import optional_text, reject_unknown_fields, require_text

PROVIDER_FIELDS = ("name", "console_url", "notes")

_BY_NAME = (("name", "asc"), ("id", "asc"))
_WITH_SERVERS = (Include("servers", order_by=_BY_NAME),)


class ProviderRegistry:
    """Hosting providers and the servers they host."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def create(self, name: str, console_url: Optional[str] = None,
               notes: Optional[str] = None) -> Provider:
        """Create a provider. The result carries its (empty) server list.

        Raises:
            ConstraintViolation: If name is missing
        """
        values = {
            "name": require_text(name, "name", "Provider"),
            "console_url": optional_text(console_url, "console_url"),
            "notes": optional_text(notes, "notes"),
        }
        return Provider.from_row(self.gateway.create("provider", values, include=_WITH_SERVERS))

    def list(self) -> List[Provider]:
        """All providers by name, each with server_count."""
        rows = self.gateway.read_many(
            "provider",
            order_by=_BY_NAME,
            counts=(Count("servers", "server_count"),),
        )
        return [Provider.from_row(row) for row in rows]

    def get(self, provider_id: int) -> Provider:
        """A provider with its servers ordered by name.

        Raises:
            NotFound: If provider_id does not exist
        """
        row = self.gateway.read_one("provider", provider_id, include=_WITH_SERVERS)
        return Provider.from_row(row)

    def update(self, provider_id: int, **fields: Any) -> Provider:
        """Change only the supplied fields.

        Raises:
            NotFound: If provider_id does not exist
            ValidationError: If an unknown field is supplied
        """
        reject_unknown_fields(fields, PROVIDER_FIELDS, "Provider")
        values = {}
        for key, value in fields.items():
            if key == "name":
                values[key] = require_text(value, key, "Provider")
            else:
                values[key] = optional_text(value, key)
        return Provider.from_row(
            self.gateway.update("provider", provider_id, values, include=_WITH_SERVERS)
        )

    def delete(self, provider_id: int) -> None:
        """Delete a provider; its servers become unassigned.

        Raises:
            NotFound: If provider_id does not exist
        """
        self.gateway.delete("provider", provider_id)
