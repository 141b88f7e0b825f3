"""
STOCKCOUNT Inventory Services
"""

from .action_log import ActionLog
from .store import InventoryStore
from .units import convert_quantity, get_unit_type, normalize_unit

__all__ = [
    "ActionLog",
    "InventoryStore",
    "convert_quantity",
    "get_unit_type",
    "normalize_unit",
]
