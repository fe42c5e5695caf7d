"""Message passing between the services and the message broker."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Mapping, Protocol

_POLL_INTERVAL = 0.1


class TransportClosedError(RuntimeError):
    """Raised when a closed transport is used."""


@dataclass(frozen=True)
class Message:
    """A keyed message addressed to a topic."""

    topic: str = ""
    key: bytes = b""
    value: bytes = b""


class Transport(Protocol):
    def write_messages(self, *messages: Message) -> None: ...

    def read_message(self, timeout: float | None = None) -> Message: ...

    def close(self) -> None: ...


class MessageAPI:
    """Queues through which the service sends and receives messages."""

    def __init__(self, maxsize: int = 0, logger: logging.Logger | None = None) -> None:
        self.input_queue: queue.Queue[Message] = queue.Queue(maxsize)
        self.output_queue: queue.Queue[Message] = queue.Queue(maxsize)
        self._log = logger or logging.getLogger(__name__)

    def send_message(self, message: Message, timeout: float | None = None) -> None:
        """Queue a message for publishing; raise TimeoutError if it cannot be queued in time."""
        self._log.info("Sending message %r", message)
        try:
            self.input_queue.put(message, timeout=timeout)
        except queue.Full:
            raise TimeoutError("timed out sending message") from None
        self._log.info("Message sent %r", message)

    def read_message(self, timeout: float | None = None) -> Message:
        """Return the next received message; raise TimeoutError if none arrives in time."""
        self._log.info("Reading message")
        try:
            return self.output_queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("no message available") from None


class InMemoryTransport:
    """A broker kept in memory, reading from a single subscribed topic."""

    def __init__(self, read_topic: str = "") -> None:
        self.read_topic = read_topic
        self.published: list[Message] = []
        self._topics: defaultdict[str, queue.Queue[Message]] = defaultdict(queue.Queue)
        self._lock = threading.Lock()
        self._closed = threading.Event()

    def _queue(self, topic: str) -> queue.Queue[Message]:
        with self._lock:
            return self._topics[topic]

    def write_messages(self, *messages: Message) -> None:
        if self._closed.is_set():
            raise TransportClosedError("transport is closed")
        if any(not m.topic for m in messages):
            raise ValueError("message has no topic")
        for message in messages:
            with self._lock:
                self.published.append(message)
            self._queue(message.topic).put(message)

    def read_message(self, timeout: float | None = None) -> Message:
        deadline = None if timeout is None else time.monotonic() + timeout
        pending = self._queue(self.read_topic)
        while True:
            if self._closed.is_set():
                raise TransportClosedError("transport is closed")
            wait = _POLL_INTERVAL
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                return pending.get(timeout=wait)
            except queue.Empty:
                if deadline is not None and time.monotonic() >= deadline:
                    raise TimeoutError("no message available") from None

    def close(self) -> None:
        self._closed.set()


class MessagePump:
    """Moves messages between a MessageAPI and a transport on background threads."""

    def __init__(
        self,
        api: MessageAPI,
        transport: Transport,
        logger: logging.Logger | None = None,
    ) -> None:
        self._api = api
        self._transport = transport
        self._log = logger or logging.getLogger(__name__)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("message pump already started")
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._write_loop, name="message-writer", daemon=True),
            threading.Thread(target=self._read_loop, name="message-reader", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._transport.close()
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = []

    def __enter__(self) -> MessagePump:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _write_loop(self) -> None:
        self._log.info("Starting to write messages")
        while not self._stop_event.is_set():
            try:
                message = self._api.input_queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                self._transport.write_messages(message)
            except Exception:
                self._log.exception("Failed to write message to topic %s", message.topic)
            else:
                self._log.info("Successfully wrote message to topic %s", message.topic)

    def _read_loop(self) -> None:
        self._log.info("Starting to read messages")
        while not self._stop_event.is_set():
            try:
                message = self._transport.read_message(timeout=_POLL_INTERVAL)
            except TimeoutError:
                continue
            except TransportClosedError:
                return
            except Exception:
                self._log.exception("Failed to read message")
                continue
            self._log.info("Read message %r", message)
            while not self._stop_event.is_set():
                try:
                    self._api.output_queue.put(message, timeout=_POLL_INTERVAL)
                    break
                except queue.Full:
                    continue


def broker_address(environ: Mapping[str, str] | None = None) -> str:
    """Return the broker address as host:port from KAFKA_HOST and KAFKA_PORT."""
    env = os.environ if environ is None else environ
    return f"{env.get('KAFKA_HOST', '')}:{env.get('KAFKA_PORT', '')}"


def service_topic(environ: Mapping[str, str] | None = None) -> str:
    """Return the topic this service reads, from SERVICE_TOPIC_READ."""
    env = os.environ if environ is None else environ
    return env.get("SERVICE_TOPIC_READ", "")