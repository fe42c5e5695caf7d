import json
import uuid

import pytest

from sagaflow.database import new_memory_database
from sagaflow.messaging import MessageAPI
from sagaflow.models import Order, OrderStatus
from sagaflow.orders_handler import (
    NotFoundError,
    create_app,
    create_order,
    get_order,
    get_orders,
)


@pytest.fixture
def db():
    database = new_memory_database(Order)
    yield database
    database.close()


def _insert(db, order_id, price, product_id, quantity, user_id):
    return db.execute(
        "INSERT INTO orders (order_id, price, product_id, quantity, status, user_id) "
        "VALUES (?, ?, ?, ?, 0, ?)",
        (order_id, price, product_id, quantity, user_id),
    ).lastrowid


def _client(db, api=None):
    return create_app(db, api).test_client()


def test_health_endpoint(db):
    response = _client(db).get("/health")
    assert response.status_code == 200
    assert response.get_data(as_text=True) == "Orders service is running"


def test_list_orders_empty_returns_no_content(db):
    response = _client(db).get("/orders")
    assert response.status_code == 204
    assert response.get_data() == b""


def test_list_orders_returns_one(db):
    new_id = _insert(db, "1", 100.0, "1", 1, 1)
    response = _client(db).get("/orders")
    assert response.status_code == 200
    body = json.loads(response.get_data())
    assert [item["ID"] for item in body] == [new_id]


def test_list_orders_returns_multiple(db):
    expected = [_insert(db, str(i), float(i), str(i), i, i) for i in range(10)]
    response = _client(db).get("/orders")
    assert response.status_code == 200
    body = json.loads(response.get_data())
    assert len(body) == len(expected)
    assert [item["ID"] for item in body] == expected


def test_get_unique_order(db):
    new_id = _insert(db, "1", 100.0, "1", 1, 1)
    response = _client(db).get(f"/orders/{new_id}")
    assert response.status_code == 200
    body = json.loads(response.get_data())
    assert body["ID"] == new_id
    assert body["OrderID"] == "1"


def test_get_unique_order_not_found(db):
    response = _client(db).get("/orders/100")
    assert response.status_code == 404
    assert json.loads(response.get_data()) == {"error": "Order not found"}


def test_get_orders_is_limited(db):
    for i in range(25):
        _insert(db, str(i), 1.0, "p", 1, 1)
    assert len(get_orders(db)) == 20


def test_get_order_missing_raises(db):
    with pytest.raises(NotFoundError):
        get_order(db, 42)


def test_create_order_stores_and_announces(db):
    api = MessageAPI()
    order = create_order(db, {"price": 9.5, "product": "widget", "quantity": 2, "user_id": 7}, api)
    assert order.status is OrderStatus.PENDING
    assert str(uuid.UUID(order.order_id)) == order.order_id
    assert get_order(db, order.id) == order

    message = api.input_queue.get_nowait()
    assert message.topic == "orders"
    assert message.key == b"OrderCreated"
    assert json.loads(message.value) == {
        "id": order.id,
        "order_id": order.order_id,
        "user_id": 7,
        "product": "widget",
        "quantity": 2,
        "price": 9.5,
    }


def test_create_order_endpoint(db):
    api = MessageAPI()
    payload = {"price": 100, "product": "1", "quantity": 3, "user_id": 1}
    response = _client(db, api).post("/orders", data=json.dumps(payload))
    assert response.status_code == 201
    body = json.loads(response.get_data())
    assert body["ProductID"] == "1"
    assert body["Quantity"] == 3
    assert body["Status"] == int(OrderStatus.PENDING)
    message = api.input_queue.get_nowait()
    assert json.loads(message.value)["order_id"] == body["OrderID"]


def test_create_order_endpoint_rejects_bad_payload(db):
    api = MessageAPI()
    response = _client(db, api).post("/orders", data=b"not json")
    assert response.status_code == 500
    assert response.get_data(as_text=True) == "Failed to create order"
    assert api.input_queue.empty()


@pytest.mark.parametrize(
    "payload",
    [
        {"quantity": 1.5},
        {"product": 3},
        {"price": "cheap"},
        [1, 2],
    ],
)
def test_create_order_invalid_fields(db, payload):
    with pytest.raises(ValueError):
        create_order(db, payload, MessageAPI())