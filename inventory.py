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
from http import HTTPStatus

import aiohttp

RATE_LIMITED = "rate_limited"
UPSTREAM_ERROR = "upstream_error"


class InventoryFetchError(Exception):

    def __init__(self, category: str, detail: str = ""):
        super().__init__(f"{category}: {detail}" if detail else category)
        self.category = category


def cookie_header(cookies: dict) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


class InventoryClient:

    def __init__(self, config):
        self._config = config

    def inventory_url(self, steam_id) -> str:
        inventory = self._config["inventory"]
        return inventory["url"].format(
            steam_id=steam_id,
            app_id=self._config["steam"]["app_id"],
            context_id=inventory["context_id"],
        )

    async def fetch(self, steam_id, cookies: dict) -> dict:
        inventory = self._config["inventory"]
        url = self.inventory_url(steam_id)
        params = {"l": inventory["language"], "count": str(inventory["count"])}
        headers = {"Cookie": cookie_header(cookies)} if cookies else {}
        timeout = aiohttp.ClientTimeout(total=inventory["timeout"])

        logging.debug(f"Fetching inventory from {url}")
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params, headers=headers) as response:
                    if response.status == HTTPStatus.TOO_MANY_REQUESTS:
                        raise InventoryFetchError(RATE_LIMITED, f"HTTP {response.status}")
                    if response.status != HTTPStatus.OK:
                        raise InventoryFetchError(UPSTREAM_ERROR, f"HTTP {response.status}")
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise InventoryFetchError(UPSTREAM_ERROR, str(e)) from e

        if not isinstance(data, dict):
            raise InventoryFetchError(UPSTREAM_ERROR, "inventory is not an object")
        return data
