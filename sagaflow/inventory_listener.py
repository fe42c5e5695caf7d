"""Reacts to order events by reserving stock or asking for the order to be reverted."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping

from .database import Database
from .messaging import Message, MessageAPI
from .models import Inventory

ORDER_CREATED_KEY = "OrderCreated"
ORDER_CREATED_TOPIC = "orders"
REVERT_ORDER_TOPIC = "inventory"
REVERT_ORDER_KEY = "RevertOrder"

_POLL_INTERVAL = 0.1

log = logging.getLogger(__name__)


def _field(data: Mapping[str, Any], name: str) -> Any:
    if name in data:
        return data[name]
    for key, value in data.items():
        if isinstance(key, str) and key.lower() == name:
            return value
    return None


def _int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    return value


def _str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


@dataclass(frozen=True)
class OrderMessage:
    """The body of an OrderCreated event."""

    id: int = 0
    order_id: str = ""
    user_id: int = 0
    product: str = ""
    quantity: int = 0
    price: float = 0.0

    @classmethod
    def from_json(cls, value: bytes | str) -> OrderMessage:
        data = json.loads(value)
        if not isinstance(data, Mapping):
            raise ValueError("order message must be a JSON object")
        price = _field(data, "price")
        if price is None:
            price = 0.0
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise ValueError("price must be a number")
        return cls(
            id=_int(_field(data, "id"), "id"),
            order_id=_str(_field(data, "order_id"), "order_id"),
            user_id=_int(_field(data, "user_id"), "user_id"),
            product=_str(_field(data, "product"), "product"),
            quantity=_int(_field(data, "quantity"), "quantity"),
            price=float(price),
        )


def handle_order_created(db: Database, value: bytes | str, api: MessageAPI) -> Inventory | None:
    """Reserve stock for an order.

    Returns the updated inventory, or None when the order was reverted because
    the product is unknown or short of stock.
    """
    order = OrderMessage.from_json(value)
    revert = Message(
        topic=REVERT_ORDER_TOPIC,
        key=REVERT_ORDER_KEY.encode(),
        value=order.order_id.encode(),
    )
    log.info(
        "Processing OrderCreated message order=%s product=%s quantity=%d",
        order.order_id, order.product, order.quantity,
    )

    rows = db.query(
        "SELECT id, product_id, quantity FROM inventory WHERE product_id = ? LIMIT 1",
        (order.product,),
    )
    if not rows:
        log.error("Reverting order, no inventory for product %s", order.product)
        api.send_message(revert)
        return None
    inventory = Inventory.from_row(rows[0])

    if inventory.quantity < order.quantity:
        log.warning(
            "Reverting order %s, insufficient inventory for %s: requested %d, available %d",
            order.order_id, order.product, order.quantity, inventory.quantity,
        )
        api.send_message(revert)
        return None

    inventory.quantity -= order.quantity
    try:
        db.execute(
            "UPDATE inventory SET product_id = ?, quantity = ? WHERE product_id = ?",
            (inventory.product_id, inventory.quantity, order.product),
        )
    except Exception:
        log.exception("Reverting order, failed to update inventory")
        api.send_message(revert)
        raise

    log.info(
        "Processed order %s for %s: quantity %d, remaining %d",
        order.order_id, order.product, order.quantity, inventory.quantity,
    )
    return inventory


def dispatch(db: Database, message: Message, api: MessageAPI) -> bool:
    """Handle one received message; return False if its key is not recognised."""
    key = message.key.decode(errors="replace")
    log.info(
        "Received message topic=%s key=%s key_hex=%s value=%s",
        message.topic, key, message.key.hex(), message.value.decode(errors="replace"),
    )
    if key != ORDER_CREATED_KEY:
        log.warning("Unknown message type %s", key)
        return False
    try:
        handle_order_created(db, message.value, api)
    except Exception:
        log.exception("Failed to handle OrderCreated message")
    return True


def listen(db: Database, api: MessageAPI, stop_event: threading.Event | None = None) -> None:
    """Process received messages until stop_event is set."""
    stop_event = stop_event or threading.Event()
    log.info("Starting message listener")
    try:
        db.ping()
    except Exception:
        log.exception("Database connection is not healthy")
        return
    log.info("Database connection verified")
    while not stop_event.is_set():
        try:
            message = api.read_message(timeout=_POLL_INTERVAL)
        except TimeoutError:
            continue
        dispatch(db, message, api)