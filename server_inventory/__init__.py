"""
Server Inventory.

Registry of servers, hosting providers, owners and monthly cost snapshots.
"""

from .core import Inventory, get_inventory
from .errors import ConstraintViolation, InventoryError, NotFound, StorageError, ValidationError

__version__ = "0.1.0"

__all__ = [
    "ConstraintViolation",
    "Inventory",
    "InventoryError",
    "NotFound",
    "StorageError",
    "ValidationError",
    "get_inventory",
]
