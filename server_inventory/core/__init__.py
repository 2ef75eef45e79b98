"""
Core modules for Server Inventory.

This package contains the registries for providers, people, servers and
the cost snapshot ledger.
"""

from .cost_snapshots import CostSnapshotLedger
from .inventory import Inventory, get_inventory
from .people import PersonRegistry
from .providers import ProviderRegistry
from .servers import ServerRegistry

__all__ = [
    "CostSnapshotLedger",
    "Inventory",
    "PersonRegistry",
    "ProviderRegistry",
    "ServerRegistry",
    "get_inventory",
]
