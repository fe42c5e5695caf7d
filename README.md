# sagaflow

sagaflow provides the parts of two small HTTP services, orders and
inventory. The services keep orders and stock consistent without a
distributed transaction. They follow the choreographed saga pattern:
each service reacts to the other's messages.

- The orders part stores orders. When it creates an order it publishes an
  `OrderCreated` message on the `orders` topic.
- The inventory part keeps stock levels. When it receives `OrderCreated`
  it reserves stock for the order. If the product is unknown, or there is
  not enough stock, it publishes a `RevertOrder` message on the `inventory`
  topic. That message's value is the order's identifier.

## Installation

```
pip install .
```

To run the test suite, install the test extra and run pytest:

```
pip install ".[test]"
pytest
```

## Running the inventory service

```
sagaflow-inventory [--host HOST] [--port PORT] [--database PATH]
```

By default the service listens on `0.0.0.0:8080`. The database is a SQLite
file. Its path comes from `--database`, then from the `DATABASE_PATH`
environment variable, and otherwise defaults to `sagaflow.db`. On startup the
command creates the `orders` and `inventory` tables if they are missing. It
then starts a listener thread that handles `OrderCreated` messages and serves
HTTP with Flask.

Messages travel through an `InMemoryTransport`, which reads from the topic
named in `SERVICE_TOPIC_READ`. Messages never leave the process.

### Environment

| Variable             | Used by                                               |
|----------------------|-------------------------------------------------------|
| `DATABASE_PATH`      | `connect_database`, when no path is given             |
| `SERVICE_TOPIC_READ` | `service_topic`, the topic the transport reads from   |
| `KAFKA_HOST`         | `broker_address`                                      |
| `KAFKA_PORT`         | `broker_address`                                      |
| `POSTGRES_HOST`, `POSTGRES_PORT`, `POSTGRES_USER`, `POSTGRES_PASSWORD`, `POSTGRES_DB` | `DBConfig.from_env` |

`broker_address` returns `host:port` built from the two broker variables.
`DBConfig.from_env` reads the `POSTGRES_*` settings. When called without a
mapping, it first loads a `.env` file. It raises `ValueError` if the port is
not an integer. `DBConfig.dsn()` returns a connection string. These helpers
only build values: nothing in the package connects to a broker or to a
PostgreSQL server.

## HTTP endpoints

### Inventory (`sagaflow.inventory_handler.create_app`)

| Method | Path              | Result                                                             |
|--------|-------------------|--------------------------------------------------------------------|
| GET    | `/health`         | `200`, body `Inventory service is running`                         |
| GET    | `/inventory`      | `200` with up to 20 records as JSON, or `204` if none              |
| GET    | `/inventory/<id>` | `200` with the record, or `404` `{"error": "Inventory not found"}` |
| POST   | `/inventory`      | `200` with the created record; publishes `InventoryCreated`        |
| PUT    | `/inventory/<id>` | `200` with the record after its quantity is set                    |

`POST` and `PUT` take this JSON body:

```json
{"product": "widget", "quantity": 10}
```

`PUT` changes only the quantity. Records are returned as
`{"ID": ..., "ProductID": ..., "Quantity": ...}`.

### Orders (`sagaflow.orders_handler.create_app`)

| Method | Path           | Result                                                        |
|--------|----------------|---------------------------------------------------------------|
| GET    | `/health`      | `200`, body `Orders service is running`                       |
| GET    | `/orders`      | `200` with up to 20 orders as JSON, or `204` if none          |
| GET    | `/orders/<id>` | `200` with the order, or `404` `{"error": "Order not found"}` |
| POST   | `/orders`      | `201` with the created order                                  |

A new order takes this JSON body:

```json
{"price": 9.5, "product": "widget", "quantity": 2, "user_id": 7}
```

The order gets a fresh UUID and the status `Pending` (`OrderStatus.PENDING`).
`OrderCreated` is then published.

## Using the pieces directly

- `sagaflow.models` holds the `Order` and `Inventory` records, each with
  `to_dict()`, and the `OrderStatus` enumeration.
- `sagaflow.database` holds the thread-safe `Database` wrapper around SQLite
  (`execute`, `query`, `ping`, `close`). It also provides `connect_database`,
  which retries until a ping succeeds; `new_memory_database(*models)` for an
  in-memory store; and `run_migrations`.
- `sagaflow.messaging` provides the following:
  - `Message` and `MessageAPI`, with `send_message` and `read_message`. Both
    take an optional timeout and raise `TimeoutError` when it expires.
  - `InMemoryTransport`, a transport that needs no broker.
  - `MessagePump`, which moves messages between the API and a transport on
    background threads. It also works as a context manager.
- `sagaflow.inventory_handler` provides the commands `get_inventory`,
  `get_inventory_by_id`, `create_inventory` and `update_inventory`.
- `sagaflow.orders_handler` provides `get_orders`, `get_order` and
  `create_order`.
- In both handler modules, a missing record raises `NotFoundError`.
- `sagaflow.inventory_listener` provides the following:
  - `handle_order_created`, which reserves stock or sends `RevertOrder`.
  - `dispatch` for a single message.
  - `listen` for a loop that runs until its stop event is set.
- `sagaflow.inventory_service.build_service(db, api)` wires the inventory
  application to its listener. Start and stop the result with
  `start()`/`stop()`, or use it with `with`.

## What is not included

- There is no command for the orders service. Serve the application from
  `sagaflow.orders_handler.create_app` yourself.
- Nothing handles `RevertOrder` messages. Orders are never moved to
  `Canceled` automatically.
- Messaging runs only in memory. No transport for a real message broker is
  provided.