"""
STOCKCOUNT Inventory Store

SQLite persistence for inventory items, applied quantity changes and the
per-session event log.

Mutations convert the spoken unit into the item's stored unit before they
are applied. Removals never take a quantity below zero.
"""

import logging
import sqlite3
from typing import Iterable, List, Optional, Tuple

from stockcount.exceptions import NotFound, ValidationError
from stockcount.types import ActionLogEntry, CatalogItem, CommandAction

from .units import convert_quantity, normalize_unit

logger = logging.getLogger("stockcount.inventory")


# (name, quantity, unit, category, threshold)
DEFAULT_CATALOG: List[Tuple[str, float, str, str, Optional[float]]] = [
    ("milk", 12, "gallons", "dairy", 4),
    ("oat milk", 6, "cartons", "dairy", 2),
    ("heavy cream", 4, "gallons", "dairy", 1),
    ("coffee beans", 40, "pounds", "coffee", 10),
    ("decaf coffee beans", 8, "pounds", "coffee", 2),
    ("espresso beans", 20, "pounds", "coffee", 5),
    ("green tea", 10, "boxes", "tea", 2),
    ("black tea", 10, "boxes", "tea", 2),
    ("vanilla syrup", 6, "bottles", "syrups", 2),
    ("caramel syrup", 6, "bottles", "syrups", 2),
    ("chocolate syrup", 5, "bottles", "syrups", 2),
    ("sugar", 25, "pounds", "pantry", 5),
    ("paper cups", 30, "sleeves", "supplies", 10),
    ("cup lids", 30, "sleeves", "supplies", 10),
    ("napkins", 20, "packs", "supplies", 5),
    ("straws", 8, "boxes", "supplies", 2),
    ("coffee filters", 12, "packs", "supplies", 3),
    ("blueberry muffin", 24, "pieces", "pastry", 6),
    ("chocolate chip cookie", 36, "pieces", "pastry", 12),
]


class InventoryStore:
    """
    SQLite-backed inventory.

    One connection shared by every session on the event loop.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS items (
        id INTEGER PRIMARY KEY,
        name TEXT UNIQUE NOT NULL,
        quantity REAL NOT NULL DEFAULT 0,
        unit TEXT NOT NULL DEFAULT 'units',
        category TEXT NOT NULL DEFAULT '',
        threshold REAL
    );

    CREATE TABLE IF NOT EXISTS inventory_updates (
        id INTEGER PRIMARY KEY,
        item_id INTEGER NOT NULL,
        action TEXT NOT NULL,
        quantity REAL NOT NULL,
        unit TEXT NOT NULL,
        previous_quantity REAL NOT NULL,
        new_quantity REAL NOT NULL,
        session_id TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (item_id) REFERENCES items(id)
    );

    CREATE TABLE IF NOT EXISTS session_logs (
        id INTEGER PRIMARY KEY,
        session_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        message TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'success',
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_item_name ON items(name);
    CREATE INDEX IF NOT EXISTS idx_updates_item ON inventory_updates(item_id);
    CREATE INDEX IF NOT EXISTS idx_session_logs ON session_logs(session_id);
    """

    def __init__(self, db_path: str = "stockcount.db"):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Connect to database and create schema if needed."""
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(self.SCHEMA)
        self._conn.commit()

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("InventoryStore is not connected")
        return self._conn

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def add_item(
        self,
        name: str,
        quantity: float = 0.0,
        unit: str = "units",
        category: str = "",
        threshold: Optional[float] = None,
    ) -> CatalogItem:
        """Insert an item, or update it if the name already exists."""
        cursor = self.connection.cursor()
        cursor.execute("""
            INSERT INTO items (name, quantity, unit, category, threshold)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                quantity = excluded.quantity,
                unit = excluded.unit,
                category = excluded.category,
                threshold = excluded.threshold
        """, (name.strip().lower(), float(quantity), normalize_unit(unit), category, threshold))
        self.connection.commit()
        return self.find_item(name)

    def get_item(self, item_id: int) -> Optional[CatalogItem]:
        cursor = self.connection.execute("SELECT * FROM items WHERE id = ?", (item_id,))
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    def find_item(self, name: str) -> Optional[CatalogItem]:
        """Exact (case-insensitive) name lookup."""
        cursor = self.connection.execute(
            "SELECT * FROM items WHERE LOWER(name) = ?", (name.strip().lower(),)
        )
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    def list_items(self) -> List[CatalogItem]:
        cursor = self.connection.execute("SELECT * FROM items ORDER BY name")
        return [self._row_to_item(row) for row in cursor.fetchall()]

    def populate_default_catalog(self, items: Iterable[tuple] = DEFAULT_CATALOG) -> int:
        """Seed the store when it is empty. Returns the number of items added."""
        if self.list_items():
            return 0
        count = 0
        for name, quantity, unit, category, threshold in items:
            self.add_item(name, quantity, unit, category, threshold)
            count += 1
        logger.info(f"Seeded inventory with {count} items")
        return count

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def apply_mutation(
        self,
        item_id: int,
        action: CommandAction,
        quantity: float,
        unit: str = "",
        session_id: Optional[str] = None,
    ) -> ActionLogEntry:
        """
        Apply add/remove/set to one item.

        Args:
            item_id: Item to change
            action: ADD, REMOVE or SET
            quantity: Amount in ``unit``
            unit: Spoken unit; empty means the item's own unit
            session_id: Recorded with the update row

        Returns:
            ActionLogEntry with the amount in the item's unit and the
            before/after quantities

        Raises:
            NotFound: Unknown item id
            ValidationError: Not a mutation, or a negative/missing quantity
            UnitConversionError: Unit cannot be converted to the item's unit
        """
        if not action.is_mutation:
            raise ValidationError(f"Cannot apply {action.value} to inventory", "action", action.value)
        if quantity is None or quantity < 0:
            raise ValidationError("Quantity must be zero or positive", "quantity", quantity)

        item = self.get_item(item_id)
        if item is None:
            raise NotFound(str(item_id))

        amount = convert_quantity(quantity, unit, item.unit) if unit else float(quantity)
        previous = item.quantity

        if action is CommandAction.ADD:
            new_quantity = previous + amount
        elif action is CommandAction.REMOVE:
            new_quantity = max(0.0, previous - amount)
            if previous - amount < 0:
                logger.warning(
                    f"Removing {amount:g} {item.unit} of {item.name} would go below zero; clamped"
                )
        else:
            new_quantity = amount

        cursor = self.connection.cursor()
        cursor.execute("UPDATE items SET quantity = ? WHERE id = ?", (new_quantity, item_id))
        cursor.execute("""
            INSERT INTO inventory_updates
            (item_id, action, quantity, unit, previous_quantity, new_quantity, session_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (item_id, action.value, amount, item.unit, previous, new_quantity, session_id))
        self.connection.commit()

        logger.info(
            f"{action.value} {amount:g} {item.unit} {item.name}: {previous:g} -> {new_quantity:g}"
        )
        return ActionLogEntry(
            action=action,
            item_id=item.id,
            item_name=item.name,
            quantity=amount,
            unit=item.unit,
            previous_quantity=previous,
            new_quantity=new_quantity,
        )

    def get_updates(self, item_id: Optional[int] = None) -> List[dict]:
        """Applied updates, oldest first."""
        sql = "SELECT * FROM inventory_updates"
        params: list = []
        if item_id is not None:
            sql += " WHERE item_id = ?"
            params.append(item_id)
        sql += " ORDER BY id"
        return [dict(row) for row in self.connection.execute(sql, params).fetchall()]

    # -------------------------------------------------------------------------
    # Session log
    # -------------------------------------------------------------------------

    def log_session_event(
        self, session_id: str, kind: str, message: str, status: str = "success"
    ):
        self.connection.execute(
            "INSERT INTO session_logs (session_id, kind, message, status) VALUES (?, ?, ?, ?)",
            (session_id, kind, message, status),
        )
        self.connection.commit()

    def get_session_logs(self, session_id: str) -> List[dict]:
        cursor = self.connection.execute(
            "SELECT kind, message, status, created_at FROM session_logs "
            "WHERE session_id = ? ORDER BY id",
            (session_id,),
        )
        return [dict(row) for row in cursor.fetchall()]

    def _row_to_item(self, row: sqlite3.Row) -> CatalogItem:
        return CatalogItem(
            id=row["id"],
            name=row["name"],
            quantity=row["quantity"],
            unit=row["unit"],
            category=row["category"],
            threshold=row["threshold"],
        )
