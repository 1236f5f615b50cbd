"""
CSGO Case Opener
Copyright (C) 2024 thiccaxe

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import asyncio
import logging

from backend import EVENT_CRATE_OPEN_FAILURE, EVENT_ITEM_ACQUIRED
from inventory import RATE_LIMITED, UPSTREAM_ERROR, InventoryClient, InventoryFetchError
from server_data import RelayConnection, ServerData
from session_manager import Session

INVENTORY_ERROR_MESSAGES = {
    RATE_LIMITED: "Error fetching inventory. This is probably a rate limit, try again in a few seconds.",
    UPSTREAM_ERROR: "Error fetching inventory. Try again later.",
}
NOT_READY_MESSAGE = "Not connected to the game coordinator."
MISSING_CRATE_IDS_MESSAGE = "Must provide both keyId and crateId."
INVALID_CRATE_IDS_MESSAGE = "Invalid keyId or crateId provided."
OPEN_CRATE_FAILED_MESSAGE = "Error opening crate. Try again later."


class RelayManager:
    """
    Bridges the backend session to the single active client connection.

    Every connection gets its own listener handles on the backend; they are registered when the
    connection opens and removed, exactly those handles, when it closes. A new connection replaces
    the active one.
    """

    def __init__(self, session: Session, inventory: InventoryClient, data: ServerData):
        self._session = session
        self._inventory = inventory
        self._data = data
        self._tasks: set[asyncio.Task] = set()

    async def connection_opened(self, websocket) -> RelayConnection:
        connection = RelayConnection(websocket)

        previous = self._data.active_connection
        if previous is not None:
            logging.info("New client connected, replacing the old one")
            self._detach(previous)
            self._data.active_connection = None
            task = asyncio.create_task(previous.websocket.close())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        backend = self._session.backend
        connection.listeners.extend([
            backend.on(EVENT_ITEM_ACQUIRED, self._on_item_acquired),
            backend.on(EVENT_CRATE_OPEN_FAILURE, self._on_crate_open_failure),
        ])
        self._data.connections[connection.cid] = connection
        self._data.active_connection = connection
        logging.info("Client connected")
        return connection

    async def connection_closed(self, connection: RelayConnection):
        self._detach(connection)
        connection.closed = True
        self._data.connections.pop(connection.cid, None)
        if self._data.active_connection is connection:
            self._data.active_connection = None
            logging.info("Client disconnected")

    def _detach(self, connection: RelayConnection):
        for handle in connection.listeners:
            self._session.backend.remove_listener(handle)
        connection.listeners.clear()

    def send_to(self, connection: RelayConnection, event: str, data=None, request_id=None):
        if connection.closed:
            logging.debug(f"Dropping {event}, connection {connection.cid} is closed")
            return
        packet = {"event": event, "data": data}
        if request_id is not None:
            packet["id"] = request_id
        connection.outbox.put_nowait(packet)

    def send_to_client(self, event: str, data=None):
        if self._data.active_connection is None:
            logging.debug(f"Wanted to send {event} when no client is connected")
            return
        self.send_to(self._data.active_connection, event, data)

    async def get_inventory(self, connection: RelayConnection, request_id=None):
        if not self._session.coordinator_ready:
            self.send_to(connection, "get_inventory_error", NOT_READY_MESSAGE, request_id)
            return

        try:
            inventory = await self._inventory.fetch(self._session.steam_id, self._session.cookies)
        except InventoryFetchError as e:
            message = INVENTORY_ERROR_MESSAGES.get(e.category, INVENTORY_ERROR_MESSAGES[UPSTREAM_ERROR])
            logging.error(message)
            logging.debug(f"Inventory fetch failed: {e}")
            self.send_to(connection, "get_inventory_error", message, request_id)
            return
        except Exception as e:
            logging.error(f"Inventory fetch failed: {e}", exc_info=e)
            self.send_to(connection, "get_inventory_error", INVENTORY_ERROR_MESSAGES[UPSTREAM_ERROR], request_id)
            return

        self.send_to(connection, "get_inventory_response", inventory, request_id)

    async def open_crate(self, connection: RelayConnection, data, request_id=None):
        if not isinstance(data, dict) or not data.get("keyId") or not data.get("crateId"):
            self.send_to(connection, "open_crate_error", MISSING_CRATE_IDS_MESSAGE, request_id)
            return

        if not self._session.coordinator_ready:
            self.send_to(connection, "open_crate_error", NOT_READY_MESSAGE, request_id)
            return

        logging.info(f"Opening crate {data['crateId']} with key {data['keyId']}")
        # the outcome comes back as item_acquired or crate_open_failure
        try:
            await self._session.backend.open_crate(data["keyId"], data["crateId"])
        except ValueError as e:
            logging.warning(f"Rejected crate request: {e}")
            self.send_to(connection, "open_crate_error", INVALID_CRATE_IDS_MESSAGE, request_id)
        except Exception as e:
            logging.error(f"Could not send crate request: {e}", exc_info=e)
            self.send_to(connection, "open_crate_error", OPEN_CRATE_FAILED_MESSAGE, request_id)

    def _on_item_acquired(self, item):
        logging.info("New item received")
        self.send_to_client("new_item", item)

    def _on_crate_open_failure(self, *args):
        logging.warning(INVALID_CRATE_IDS_MESSAGE)
        self.send_to_client("open_crate_error", INVALID_CRATE_IDS_MESSAGE)

    async def close(self):
        for connection in list(self._data.connections.values()):
            await self.connection_closed(connection)
        for task in self._tasks:
            task.cancel()
