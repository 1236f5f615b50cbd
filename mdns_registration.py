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

import logging
import socket
from typing import Optional

import zeroconf
from zeroconf import IPVersion
from zeroconf.asyncio import AsyncZeroconf, AsyncServiceInfo

SERVICE_TYPE = "_csgo-opener._tcp.local."


def local_address() -> str:
    # no packet is sent, connect() on udp only picks the outgoing interface
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
        probe.connect(("10.255.255.255", 1))
        return probe.getsockname()[0]


class ZeroconfException(Exception): pass


class RelayZeroconf:
    """announces the relay on the local network, never fatal"""
    _service: Optional[AsyncServiceInfo] = None

    def __init__(self, config, port: int):
        self._config = config
        self._port = port
        self._zeroconf: Optional[AsyncZeroconf] = None

    def service_info(self, address: str) -> AsyncServiceInfo:
        name = self._config['exposure']['service_name']
        return AsyncServiceInfo(
            SERVICE_TYPE,
            f"{name}.{SERVICE_TYPE}",
            addresses=[socket.inet_aton(address)],
            port=self._port,
            properties={"path": "/", "app_id": str(self._config['steam']['app_id'])},
            server=f"{socket.gethostname()}.local.",
        )

    async def start(self):
        try:
            self._service = self.service_info(local_address())
            self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
            await self._zeroconf.async_register_service(self._service)
            logging.debug(f"Registered services.")
        except (zeroconf.Error, OSError) as e:
            raise ZeroconfException() from e

    async def stop(self):
        if self._zeroconf is None:
            return
        await self._zeroconf.async_unregister_all_services()
        await self._zeroconf.async_close()
        self._zeroconf = None
        logging.debug(f"Unregistered services.")

    async def __aenter__(self):
        if not self._config['exposure']['mdns']:
            return self
        try:
            await self.start()
        except ZeroconfException as e:
            logging.warning(f"Could not announce the server on the local network: {e.__cause__}")
            await self.__aexit__(type(e), e, e.__traceback__)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            await self.stop()
        except (zeroconf.Error, OSError) as e:
            logging.warning(f"Could not unregister services: {e}")
