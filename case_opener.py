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
import os
import sys

from backend import GameBackend, LogonError, SecondFactorRejected
from config import Config, ConfigurationLoadError
from credential_prompt import CredentialPrompt
from exposure import PublicExposure
from inventory import InventoryClient
from logger import setup_logging
from mdns_registration import RelayZeroconf
from relay_manager import RelayManager
from server_data import ServerData
from session_manager import SessionManager
from token_store import TokenStore
from websocket_server import WebsocketServer


class CaseOpener:

    def __init__(self, config, loop: asyncio.AbstractEventLoop, backend: GameBackend, token_store: TokenStore,
                 prompt: CredentialPrompt):
        self._config = config
        self._loop = loop
        self._prompt = prompt
        self._data = ServerData()
        self._session_manager = SessionManager(self._config, self._loop, backend, token_store, prompt)
        self._manager = RelayManager(self._session_manager.session, InventoryClient(self._config), self._data)
        self._websocket_server = WebsocketServer(self._config, self._data, self._manager)

    async def begin(self):
        logging.info("Starting CSGO Case Opener")
        try:
            await self._session_manager.start()

            logging.info("Starting server...")
            async with self._websocket_server:
                async with RelayZeroconf(self._config, self._websocket_server.port):
                    exposure = PublicExposure(self._config, self._prompt, self._websocket_server.port)
                    # runs alongside the server, cancelled on shutdown
                    expose_task = asyncio.create_task(exposure.expose())
                    try:
                        logging.info("Ctrl^C to quit")
                        await self._data.shutdown_event.wait()
                    except asyncio.CancelledError:
                        logging.info("Cancelled ...")
                    finally:
                        logging.info("Stopping Server ...")
                        expose_task.cancel()
                        await asyncio.gather(expose_task, return_exceptions=True)
                        await exposure.close()
                        await self._manager.close()
        finally:
            await self._session_manager.close()


def create_backend(loop: asyncio.AbstractEventLoop) -> GameBackend:
    # gevent stack, only needed for the real thing
    from steam_gateway import SteamGateway

    gateway = SteamGateway(loop)
    gateway.start()
    return gateway


async def main() -> int:
    logging.info("Starting CSGO Case Opener ...")

    config = Config(os.environ.get("CASE_OPENER_CONFIG", "./config.toml"))
    loop = asyncio.get_running_loop()

    try:
        await config.initialize()
    except ConfigurationLoadError:
        logging.error("Could not load configuration. Exiting")
        return 1

    token_store = TokenStore(TokenStore.default_path(config.config["steam"]["app_name"]))
    await token_store.initialize()

    case_opener = CaseOpener(config.config, loop, create_backend(loop), token_store, CredentialPrompt())
    try:
        await case_opener.begin()
    except SecondFactorRejected:
        logging.error("Invalid Steam Guard code provided. Try again.")
        return 1
    except LogonError as e:
        logging.error(f"Could not log into Steam: {e}")
        return 1
    return 0


def run():
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("Cancelled ...")


if __name__ == "__main__":
    run()
