"""Entry point of the inventory service."""

from __future__ import annotations

import argparse
import logging
import threading

from flask import Flask

from .database import Database, connect_database, run_migrations
from .inventory_handler import create_app
from .inventory_listener import listen
from .messaging import InMemoryTransport, MessageAPI, MessagePump, service_topic


class _Service:
    """The HTTP application together with its message listener."""

    def __init__(self, app: Flask, db: Database, api: MessageAPI) -> None:
        self.app = app
        self.db = db
        self.api = api
        self.stop_event = threading.Event()
        self._listener: threading.Thread | None = None

    def start(self) -> None:
        if self._listener is not None:
            raise RuntimeError("service already started")
        self.stop_event.clear()
        self._listener = threading.Thread(
            target=listen,
            args=(self.db, self.api, self.stop_event),
            name="inventory-listener",
            daemon=True,
        )
        self._listener.start()

    def stop(self) -> None:
        self.stop_event.set()
        if self._listener is not None:
            self._listener.join(timeout=5)
            self._listener = None

    @property
    def running(self) -> bool:
        return self._listener is not None and self._listener.is_alive()

    def __enter__(self) -> _Service:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def build_service(db: Database, api: MessageAPI) -> _Service:
    """Wire the HTTP application and the message listener to a database and API."""
    return _Service(create_app(db, api), db, api)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="inventory-service", description="Run the inventory service.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--database", default=None, help="database file path")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    db = connect_database(args.database)
    try:
        run_migrations(db)
        api = MessageAPI()
        transport = InMemoryTransport(service_topic())
        service = build_service(db, api)
        with MessagePump(api, transport), service:
            logging.getLogger(__name__).info("Starting server on port %d", args.port)
            service.app.run(host=args.host, port=args.port, threaded=True)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())