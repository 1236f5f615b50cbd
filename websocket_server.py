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
import json
import logging
from typing import Optional

import websockets.exceptions
from websockets.asyncio.server import Server, ServerConnection, serve

from relay_manager import RelayManager
from server_data import RelayConnection, ServerData


class WebsocketServer:

    def __init__(self, config, data: ServerData, manager: RelayManager):
        self._config = config
        self._data = data
        self._manager = manager
        self._server: Optional[Server] = None
        self._websocket_server = None
        self._event_handlers = {
            "get_inventory": self._handle_get_inventory,
            "open_crate": self._handle_open_crate,
        }

    @property
    def port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def handler(self, websocket: ServerConnection):
        connection = await self._manager.connection_opened(websocket)
        writer_task = asyncio.create_task(self._write_packets(connection))
        reader_task = asyncio.create_task(self._read_packets(connection))
        shutdown_wait_task = asyncio.create_task(self._data.shutdown_event.wait())
        closed_wait_task = asyncio.create_task(websocket.wait_closed())
        try:
            await asyncio.wait(
                [reader_task, shutdown_wait_task, closed_wait_task],
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            # listeners go away first, whatever ended the connection
            await self._manager.connection_closed(connection)
            for task in (writer_task, reader_task, shutdown_wait_task, closed_wait_task):
                task.cancel()

        if reader_task.done() and not reader_task.cancelled() and reader_task.exception() is not None:
            logging.error("Client handler failed", exc_info=reader_task.exception())

        # shutdown case
        if self._data.shutdown_event.is_set():
            await websocket.close()

    async def _read_packets(self, connection: RelayConnection):
        try:
            async for message in connection.websocket:
                if isinstance(message, str):
                    await self._parse_message(connection, message)
                else:
                    logging.warning("WebSocket sent binary data, ignoring")
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection closed")

    async def _write_packets(self, connection: RelayConnection):
        try:
            while True:
                packet = await connection.outbox.get()
                await connection.websocket.send(json.dumps(packet))
        except websockets.exceptions.ConnectionClosed:
            logging.debug(f"Websocket connection closed while sending")

    async def _parse_message(self, connection: RelayConnection, message: str):
        try:
            packet = json.loads(message)
        except json.JSONDecodeError as e:
            logging.warning(f"WebSocket sent non-JSON data; details:")
            logging.exception(e)
            return

        logging.debug(f"Received message: {packet}")
        if not isinstance(packet, dict) or not isinstance(packet.get("event"), str):
            logging.warning(f"Malformed packet - no event")
            return
        await self._handle_packet(connection, packet)

    async def _handle_packet(self, connection: RelayConnection, packet: dict) -> None:
        packet_handler = self._event_handlers.get(packet["event"])
        if packet_handler is None:
            logging.warning(f"Unknown event {packet['event']}")
            self._manager.send_to(connection, "error", "Unknown event.", packet.get("id"))
            return
        try:
            await packet_handler(connection, packet)
        except Exception as e:
            # one failed request must not end the connection
            logging.error(f"Handler for {packet['event']} failed", exc_info=e)
            self._manager.send_to(connection, "error", "Internal error.", packet.get("id"))

    async def _handle_get_inventory(self, connection: RelayConnection, packet: dict):
        await self._manager.get_inventory(connection, packet.get("id"))

    async def _handle_open_crate(self, connection: RelayConnection, packet: dict):
        await self._manager.open_crate(connection, packet.get("data"), packet.get("id"))

    async def __aenter__(self):
        logging.debug(f"Starting websocket server")
        self._websocket_server = serve(self.handler, self._config["server"]["host"] or None,
                                       int(self._config["server"]["port"]))
        self._server = await self._websocket_server.__aenter__()
        logging.info(f"Server started on port {self.port}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._data.shutdown_event.set()
        if self._websocket_server is not None:
            logging.debug(f"Stopping websocket server")
            return await self._websocket_server.__aexit__(exc_type, exc_val, exc_tb)
