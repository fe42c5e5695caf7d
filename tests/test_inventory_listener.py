import json
import threading
import time

import pytest

from sagaflow.database import new_memory_database
from sagaflow.inventory_listener import (
    OrderMessage,
    dispatch,
    handle_order_created,
    listen,
)
from sagaflow.messaging import Message, MessageAPI
from sagaflow.models import Inventory


@pytest.fixture
def db():
    database = new_memory_database(Inventory)
    yield database
    database.close()


@pytest.fixture
def api():
    return MessageAPI()


def _insert(db, product, quantity):
    db.execute("INSERT INTO inventory (product_id, quantity) VALUES (?, ?)", (product, quantity))


def _stock(db, product):
    return db.query("SELECT quantity FROM inventory WHERE product_id = ?", (product,))[0][
        "quantity"
    ]


def _order(order_id, product, quantity):
    return json.dumps(
        {"id": 1, "order_id": order_id, "user_id": 2, "product": product,
         "quantity": quantity, "price": 1.5}
    ).encode()


def test_order_message_from_json():
    message = OrderMessage.from_json(_order("order-1", "widget", 3))
    assert message == OrderMessage(
        id=1, order_id="order-1", user_id=2, product="widget", quantity=3, price=1.5
    )


def test_order_message_rejects_invalid_json():
    with pytest.raises(ValueError):
        OrderMessage.from_json(b"not json")


def test_sufficient_stock_is_reserved(db, api):
    initial, requested = 10, 3
    _insert(db, "widget", initial)
    result = handle_order_created(db, _order("order-1", "widget", requested), api)
    assert result.quantity == initial - requested
    assert _stock(db, "widget") == initial - requested
    assert api.input_queue.empty()


def test_insufficient_stock_reverts(db, api):
    _insert(db, "widget", 2)
    assert handle_order_created(db, _order("order-1", "widget", 5), api) is None
    assert api.input_queue.get_nowait() == Message(
        topic="inventory", key=b"RevertOrder", value=b"order-1"
    )
    assert _stock(db, "widget") == 2


def test_unknown_product_reverts(db, api):
    assert handle_order_created(db, _order("order-9", "missing", 1), api) is None
    message = api.input_queue.get_nowait()
    assert (message.key, message.value) == (b"RevertOrder", b"order-9")


def test_invalid_value_raises(db, api):
    with pytest.raises(ValueError):
        handle_order_created(db, b"{broken", api)


def test_dispatch_unknown_key(db, api):
    _insert(db, "widget", 4)
    message = Message(topic="orders", key=b"Other", value=_order("o", "widget", 1))
    assert dispatch(db, message, api) is False
    assert _stock(db, "widget") == 4


def test_dispatch_swallows_handler_errors(db, api):
    message = Message(topic="orders", key=b"OrderCreated", value=b"{broken")
    assert dispatch(db, message, api) is True
    assert api.input_queue.empty()


def test_listen_processes_messages_until_stopped(db, api):
    _insert(db, "widget", 5)
    stop = threading.Event()
    thread = threading.Thread(target=listen, args=(db, api, stop), daemon=True)
    thread.start()
    api.output_queue.put(Message(topic="orders", key=b"OrderCreated",
                                 value=_order("order-1", "widget", 5)))
    deadline = time.monotonic() + 5
    while _stock(db, "widget") != 0 and time.monotonic() < deadline:
        time.sleep(0.02)
    stop.set()
    thread.join(timeout=5)
    assert _stock(db, "widget") == 0
    assert not thread.is_alive()


def test_listen_returns_when_database_unhealthy(api):
    database = new_memory_database(Inventory)
    database.close()
    thread = threading.Thread(target=listen, args=(database, api, threading.Event()), daemon=True)
    thread.start()
    thread.join(timeout=5)
    assert not thread.is_alive()