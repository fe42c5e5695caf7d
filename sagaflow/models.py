"""Persistent records shared by the order and inventory services."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar, Mapping


class OrderStatus(IntEnum):
    """Lifecycle state of an order, stored as an integer."""

    PENDING = 0
    CONFIRMED = 1
    CANCELED = 2
    COMPLETED = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    def __str__(self) -> str:
        return self.label


@dataclass
class Inventory:
    """Stock level of one product."""

    table: ClassVar[str] = "inventory"
    schema: ClassVar[str] = (
        "CREATE TABLE IF NOT EXISTS inventory ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "product_id TEXT NOT NULL DEFAULT '', "
        "quantity INTEGER NOT NULL DEFAULT 0)"
    )

    id: int = 0
    product_id: str = ""
    quantity: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Inventory:
        return cls(
            id=int(row["id"]),
            product_id=str(row["product_id"]),
            quantity=int(row["quantity"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation used by the HTTP API."""
        return {"ID": self.id, "ProductID": self.product_id, "Quantity": self.quantity}


@dataclass
class Order:
    """An order placed by a user for a quantity of one product."""

    table: ClassVar[str] = "orders"
    schema: ClassVar[str] = (
        "CREATE TABLE IF NOT EXISTS orders ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "order_id TEXT NOT NULL DEFAULT '', "
        "price REAL NOT NULL DEFAULT 0, "
        "product_id TEXT NOT NULL DEFAULT '', "
        "quantity INTEGER NOT NULL DEFAULT 0, "
        "status INTEGER NOT NULL DEFAULT 0, "
        "user_id INTEGER NOT NULL DEFAULT 0)"
    )

    id: int = 0
    order_id: str = ""
    price: float = 0.0
    # Product and user are referenced by identifier rather than by relation.
    product_id: str = ""
    quantity: int = 0
    status: OrderStatus = OrderStatus.PENDING
    user_id: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Order:
        return cls(
            id=int(row["id"]),
            order_id=str(row["order_id"]),
            price=float(row["price"]),
            product_id=str(row["product_id"]),
            quantity=int(row["quantity"]),
            status=OrderStatus(int(row["status"])),
            user_id=int(row["user_id"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation used by the HTTP API."""
        return {
            "ID": self.id,
            "OrderID": self.order_id,
            "Price": self.price,
            "ProductID": self.product_id,
            "Quantity": self.quantity,
            "Status": int(self.status),
            "UserID": self.user_id,
        }