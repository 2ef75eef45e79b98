"""
Inventory facade.

Bundles the four registries over one persistence gateway.
"""

from typing import Optional

from ..storage.db import DEFAULT_DB_PATH
from ..storage.gateway import PersistenceGateway
from .cost_snapshots import CostSnapshotLedger
from .people import PersonRegistry
from .providers import ProviderRegistry
from .servers import ServerRegistry


class Inventory:
    """Entry point to providers, people, servers and cost snapshots.

    The registries never call each other; they share only the gateway.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, initialize: bool = True):
        """Initialize the inventory with a database path.

        Args:
            db_path: Path to SQLite database file
            initialize: Create the schema if it does not exist yet
        """
        self.db_path = db_path
        self.gateway = PersistenceGateway(db_path)
        if initialize:
            self.gateway.initialize_schema()
        self.providers = ProviderRegistry(self.gateway)
        self.people = PersonRegistry(self.gateway)
        self.servers = ServerRegistry(self.gateway)
        self.cost_snapshots = CostSnapshotLedger(self.gateway)


_default_inventory: Optional[Inventory] = None


def get_inventory(db_path: str = DEFAULT_DB_PATH) -> Inventory:
    """Get a shared Inventory instance for db_path.

    The instance is replaced when a different path is requested.
    """
    global _default_inventory
    if _default_inventory is None or _default_inventory.db_path != db_path:
        _default_inventory = Inventory(db_path)
    return _default_inventory
