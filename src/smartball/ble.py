"""Transport boundary between the session and a GATT link.

The session only ever talks to a ``Transport``. ``BleakTransport`` adapts a
connected ``BleakClient``: requests are scheduled on the running event loop
and their completions are reported back through the bound handler, one per
request.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Callable

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic

from smartball.commands import TransportFault
from smartball.protocol import CCCD_CODE, NOTIFY_ON, Characteristic, derive_id

logger = logging.getLogger(__name__)

GATT_SUCCESS = 0
GATT_FAILURE = 0x101

CompletionHandler = Callable[[Any, int], None]
NotificationHandler = Callable[[Any, bytes], None]

__all__ = [
    "GATT_SUCCESS",
    "GATT_FAILURE",
    "Transport",
    "TransportFault",
    "BleakTransport",
    "discover_attributes",
]


class Transport(ABC):
    """A link that accepts one outstanding request at a time.

    ``enable_notifications``, ``write`` and ``read`` return once the request
    is issued and raise TransportFault if it cannot be. Each issued write or
    read is later reported through ``complete``; notifications go through
    ``notify`` in arrival order.
    """

    def __init__(self) -> None:
        self._on_complete: CompletionHandler | None = None
        self._on_notification: NotificationHandler | None = None

    def bind(self, on_complete: CompletionHandler, on_notification: NotificationHandler) -> None:
        self._on_complete = on_complete
        self._on_notification = on_notification

    def complete(self, value: bytes | None = None, status: int = GATT_SUCCESS) -> None:
        if self._on_complete is not None:
            self._on_complete(value, status)

    def notify(self, attribute_uuid: Any, value: bytes) -> None:
        if self._on_notification is not None:
            self._on_notification(attribute_uuid, value)

    @abstractmethod
    def enable_notifications(self, handle: Any) -> None: ...

    @abstractmethod
    def write(self, handle: Any, payload: bytes, descriptor: str | None = None) -> None: ...

    @abstractmethod
    def read(self, handle: Any, descriptor: str | None = None) -> None: ...


class BleakTransport(Transport):
    """Transport over a connected BleakClient; handles are BleakGATTCharacteristic."""

    def __init__(self, client: BleakClient) -> None:
        super().__init__()
        self.client = client
        self._tasks: set[asyncio.Task] = set()

    def enable_notifications(self, handle: BleakGATTCharacteristic) -> None:
        # bleak subscribes when the CCCD is written, so only the link is checked here
        self._require_connected()

    def write(self, handle: BleakGATTCharacteristic, payload: bytes, descriptor: str | None = None) -> None:
        self._require_connected()
        if descriptor is None:
            coro = self.client.write_gatt_char(handle, payload, response=True)
        elif descriptor.upper() == CCCD_CODE and bytes(payload) == NOTIFY_ON:
            coro = self.client.start_notify(handle, self._handle_notification)
        else:
            coro = self.client.write_gatt_descriptor(self._descriptor(handle, descriptor).handle, payload)
        self._schedule(coro, returns_value=False)

    def read(self, handle: BleakGATTCharacteristic, descriptor: str | None = None) -> None:
        self._require_connected()
        if descriptor is None:
            coro = self.client.read_gatt_char(handle)
        else:
            coro = self.client.read_gatt_descriptor(self._descriptor(handle, descriptor).handle)
        self._schedule(coro, returns_value=True)

    # -- internals ---------------------------------------------------------

    def _require_connected(self) -> None:
        if not self.client.is_connected:
            raise TransportFault("Not connected")

    @staticmethod
    def _descriptor(handle: BleakGATTCharacteristic, code: str):
        desc = handle.get_descriptor(derive_id(code))
        if desc is None:
            raise TransportFault(f"Descriptor {code} not found on {handle.uuid}")
        return desc

    def _schedule(self, coro, returns_value: bool) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            coro.close()
            raise TransportFault("No running event loop") from exc
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(partial(self._finished, returns_value))

    def _finished(self, returns_value: bool, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.complete(None, GATT_FAILURE)
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("GATT request failed: %s", exc)
            self.complete(None, GATT_FAILURE)
            return
        value = bytes(task.result()) if returns_value else None
        self.complete(value, GATT_SUCCESS)

    def _handle_notification(self, sender: BleakGATTCharacteristic, data: bytearray) -> None:
        self.notify(sender.uuid, bytes(data))


def discover_attributes(client: BleakClient, session) -> int:
    """Register every known characteristic the client resolved with ``session``.

    Returns the number of characteristics registered.
    """
    found = 0
    for service in client.services:
        for char in service.characteristics:
            known = Characteristic.from_uuid(char.uuid)
            if known is None or known.service.uuid != uuid.UUID(service.uuid):
                continue
            session.add_attribute(known, char)
            found += 1
    logger.debug("Discovered %d of %d characteristics", found, len(Characteristic))
    return found
