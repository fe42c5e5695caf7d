"""Order commands and the HTTP application that exposes them."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Mapping

from flask import Flask, Response, request

from .database import Database
from .messaging import Message, MessageAPI
from .models import Order, OrderStatus

ORDER_TOPIC = "orders"
ORDER_KEY = "OrderCreated"
LIST_LIMIT = 20

_COLUMNS = "id, order_id, price, product_id, quantity, status, user_id"

log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a requested order does not exist."""


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


def _parse_payload(payload: bytes | str | Mapping[str, Any]) -> tuple[float, str, int, int]:
    """Return (price, product, quantity, user_id) from a JSON body or decoded mapping."""
    data = json.loads(payload) if isinstance(payload, (bytes, bytearray, str)) else payload
    if not isinstance(data, Mapping):
        raise ValueError("payload must be a JSON object")
    price = _field(data, "price")
    price = 0.0 if price is None else price
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise ValueError("price must be a number")
    product = _field(data, "product")
    product = "" if product is None else product
    if not isinstance(product, str):
        raise ValueError("product must be a string")
    quantity = _int(_field(data, "quantity"), "quantity")
    user_id = _int(_field(data, "user_id"), "user_id")
    return float(price), product, quantity, user_id


def _number(value: float) -> int | float:
    """Render integral floats without a fractional part, as numbers are sent on the wire."""
    return int(value) if value.is_integer() else value


def get_orders(db: Database) -> list[Order]:
    """Return up to LIST_LIMIT orders."""
    rows = db.query(f"SELECT {_COLUMNS} FROM orders LIMIT ?", (LIST_LIMIT,))
    return [Order.from_row(row) for row in rows]


def get_order(db: Database, order_id: str | int) -> Order:
    """Return the order with the given id, or raise NotFoundError."""
    rows = db.query(f"SELECT {_COLUMNS} FROM orders WHERE id = ? LIMIT 1", (order_id,))
    if not rows:
        raise NotFoundError(f"order {order_id} not found")
    return Order.from_row(rows[0])


def create_order(
    db: Database, payload: bytes | str | Mapping[str, Any], api: MessageAPI
) -> Order:
    """Store a new pending order and announce it on the orders topic."""
    price, product, quantity, user_id = _parse_payload(payload)
    order = Order(
        order_id=str(uuid.uuid4()),
        price=price,
        product_id=product,
        quantity=quantity,
        status=OrderStatus.PENDING,
        user_id=user_id,
    )
    result = db.execute(
        "INSERT INTO orders (order_id, price, product_id, quantity, status, user_id) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (order.order_id, order.price, order.product_id, order.quantity,
         int(order.status), order.user_id),
    )
    order.id = result.lastrowid or 0
    value = json.dumps(
        {
            "id": order.id,
            "order_id": order.order_id,
            "user_id": order.user_id,
            "product": order.product_id,
            "quantity": order.quantity,
            "price": _number(order.price),
        },
        sort_keys=True,
        separators=(",", ":"),
    ).encode()
    api.send_message(Message(topic=ORDER_TOPIC, key=ORDER_KEY.encode(), value=value))
    return order


def _json(data: Any, status: int = 200) -> Response:
    return Response(json.dumps(data) + "\n", status=status, mimetype="application/json")


def create_app(db: Database, api: MessageAPI | None) -> Flask:
    """Build the HTTP application of the orders service."""
    app = Flask(__name__)

    @app.route("/health", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
    def health() -> Response:
        return Response("Orders service is running", status=200, mimetype="text/plain")

    @app.get("/orders")
    def list_orders() -> Response:
        try:
            orders = get_orders(db)
        except Exception:
            log.exception("Failed to get orders")
            return Response("Failed to get orders", status=500, mimetype="text/plain")
        if not orders:
            return Response(status=204)
        return _json([order.to_dict() for order in orders])

    @app.get("/orders/<order_id>")
    def show_order(order_id: str) -> Response:
        try:
            order = get_order(db, order_id)
        except NotFoundError:
            log.error("Failed to get order %s: not found", order_id)
            return _json({"error": "Order not found"}, status=404)
        except Exception:
            log.exception("Failed to get order %s", order_id)
            return Response(status=500)
        return _json(order.to_dict())

    @app.post("/orders")
    def add_order() -> Response:
        try:
            order = create_order(db, request.get_data(), api)
        except Exception:
            log.exception("Failed to create order")
            return Response("Failed to create order", status=500, mimetype="text/plain")
        return _json(order.to_dict(), status=201)

    return app