"""Inventory commands and the HTTP application that exposes them."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from flask import Flask, Response, request

from .database import Database
from .messaging import Message, MessageAPI
from .models import Inventory

INVENTORY_TOPIC = "inventory"
INVENTORY_KEY = "InventoryCreated"
LIST_LIMIT = 20

log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a requested inventory record does not exist."""


def _field(data: Mapping[str, Any], name: str) -> Any:
    if name in data:
        return data[name]
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == name:
            return value
    return None


def _parse_payload(payload: bytes | str | Mapping[str, Any]) -> tuple[str, int]:
    """Return (product, quantity) from a JSON body or an already decoded mapping."""
    data = json.loads(payload) if isinstance(payload, (bytes, bytearray, str)) else payload
    if not isinstance(data, Mapping):
        raise ValueError("payload must be a JSON object")
    product = _field(data, "product")
    quantity = _field(data, "quantity")
    product = "" if product is None else product
    quantity = 0 if quantity is None else quantity
    if not isinstance(product, str):
        raise ValueError("product must be a string")
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValueError("quantity must be an integer")
    return product, quantity


def get_inventory(db: Database) -> list[Inventory]:
    """Return up to LIST_LIMIT inventory records."""
    rows = db.query("SELECT id, product_id, quantity FROM inventory LIMIT ?", (LIST_LIMIT,))
    return [Inventory.from_row(row) for row in rows]


def get_inventory_by_id(db: Database, inventory_id: str | int) -> Inventory:
    """Return the inventory record with the given id, or raise NotFoundError."""
    rows = db.query(
        "SELECT id, product_id, quantity FROM inventory WHERE id = ? LIMIT 1",
        (inventory_id,),
    )
    if not rows:
        raise NotFoundError(f"inventory {inventory_id} not found")
    return Inventory.from_row(rows[0])


def create_inventory(
    db: Database, payload: bytes | str | Mapping[str, Any], api: MessageAPI
) -> Inventory:
    """Store a new inventory record and announce it on the inventory topic."""
    product, quantity = _parse_payload(payload)
    result = db.execute(
        "INSERT INTO inventory (product_id, quantity) VALUES (?, ?)", (product, quantity)
    )
    inventory = Inventory(id=result.lastrowid or 0, product_id=product, quantity=quantity)
    value = json.dumps(
        {"id": inventory.id, "product": inventory.product_id, "quantity": inventory.quantity},
        sort_keys=True,
        separators=(",", ":"),
    ).encode()
    api.send_message(Message(topic=INVENTORY_TOPIC, key=INVENTORY_KEY.encode(), value=value))
    return inventory


def update_inventory(
    db: Database,
    inventory_id: str | int,
    payload: bytes | str | Mapping[str, Any],
    api: MessageAPI | None,
) -> Inventory:
    """Set the quantity of an existing inventory record."""
    _, quantity = _parse_payload(payload)
    inventory = get_inventory_by_id(db, inventory_id)
    inventory.quantity = quantity
    db.execute(
        "UPDATE inventory SET product_id = ?, quantity = ? WHERE id = ?",
        (inventory.product_id, inventory.quantity, inventory_id),
    )
    return inventory


def _json(data: Any, status: int = 200) -> Response:
    return Response(json.dumps(data) + "\n", status=status, mimetype="application/json")


def create_app(db: Database, api: MessageAPI | None) -> Flask:
    """Build the HTTP application of the inventory service."""
    app = Flask(__name__)

    @app.route("/health", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    def health() -> Response:
        return Response("Inventory service is running", status=200, mimetype="text/plain")

    @app.get("/inventory")
    def list_inventory() -> Response:
        try:
            inventory = get_inventory(db)
        except Exception:
            log.exception("Failed to get inventory")
            return Response(status=500)
        if not inventory:
            return Response(status=204)
        return _json([item.to_dict() for item in inventory])

    @app.get("/inventory/<inventory_id>")
    def show_inventory(inventory_id: str) -> Response:
        try:
            inventory = get_inventory_by_id(db, inventory_id)
        except NotFoundError:
            log.error("Failed to get inventory %s: not found", inventory_id)
            return _json({"error": "Inventory not found"}, status=404)
        except Exception:
            log.exception("Failed to get inventory %s", inventory_id)
            return Response(status=500)
        return _json(inventory.to_dict())

    @app.post("/inventory")
    def add_inventory() -> Response:
        try:
            inventory = create_inventory(db, request.get_data(), api)
        except Exception:
            log.exception("Failed to create inventory")
            return Response(status=500)
        return _json(inventory.to_dict())

    @app.put("/inventory/<inventory_id>")
    def change_inventory(inventory_id: str) -> Response:
        try:
            inventory = update_inventory(db, inventory_id, request.get_data(), api)
        except Exception:
            log.exception("Failed to update inventory")
            return Response(status=500)
        return _json(inventory.to_dict())

    return app