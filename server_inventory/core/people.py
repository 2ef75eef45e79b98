"""
Person registry.

People are the responsible owners of servers.
"""

from typing import Any, List, Optional

from ..storage.gateway import Count, Include, PersistenceGateway
from ..storage.models import Person
from .validation import optional_email, optional_text, reject_unknown_fields, require_text

PERSON_FIELDS = ("name", "email", "telegram")

_BY_NAME = (("name", "asc"), ("id", "asc"))
_WITH_SERVERS = (
    Include("servers_owned", order_by=_BY_NAME, include=(Include("provider"),)),
)


class PersonRegistry:
    """Server owners."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def create(self, name: str, email: Optional[str] = None,
               telegram: Optional[str] = None) -> Person:
        """Create a person. The result carries its (empty) servers_owned list.

        Raises:
            ConstraintViolation: If name is missing
            ValidationError: If email is not a valid address
        """
        values = {
            "name": require_text(name, "name", "Person"),
            "email": optional_email(email),
            "telegram": optional_text(telegram, "telegram"),
        }
        return Person.from_row(self.gateway.create("person", values, include=_WITH_SERVERS))

    def list(self) -> List[Person]:
        """All people by name, each with server_count."""
        rows = self.gateway.read_many(
            "person",
            order_by=_BY_NAME,
            counts=(Count("servers_owned", "server_count"),),
        )
        return [Person.from_row(row) for row in rows]

    def get(self, person_id: int) -> Person:
        """A person with owned servers by name, each carrying its provider.

        Raises:
            NotFound: If person_id does not exist
        """
        row = self.gateway.read_one("person", person_id, include=_WITH_SERVERS)
        return Person.from_row(row)

    def update(self, person_id: int, **fields: Any) -> Person:
        """Change only the supplied fields.

        Raises:
            NotFound: If person_id does not exist
            ValidationError: If a field is unknown or email is malformed
        """
        reject_unknown_fields(fields, PERSON_FIELDS, "Person")
        values = {}
        for key, value in fields.items():
            if key == "name":
                values[key] = require_text(value, key, "Person")
            elif key == "email":
                values[key] = optional_email(value)
            else:
                values[key] = optional_text(value, key)
        return Person.from_row(
            self.gateway.update("person", person_id, values, include=_WITH_SERVERS)
        )

    def delete(self, person_id: int) -> None:
        """Delete a person; servers they owned become unassigned.

        Raises:
            NotFound: If person_id does not exist
        """
        self.gateway.delete("person", person_id)
