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
import io
import logging
from typing import Callable, Optional

import qrcode
from pyngrok import ngrok

from credential_prompt import ask_in_background
from logger import print


def open_ngrok_tunnel(port: int) -> str:
    return ngrok.connect(port, "http").public_url


def close_ngrok_tunnel(public_url: str):
    ngrok.disconnect(public_url)
    ngrok.kill()


def render_qr(data: str) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue()


class PublicExposure:
    """
    Best effort public URL for the relay. Nothing in here may stop the server: every failure ends
    up as a warning.
    """

    def __init__(self, config, prompt, port: int,
                 opener: Callable[[int], str] = open_ngrok_tunnel,
                 closer: Callable[[str], None] = close_ngrok_tunnel):
        self._config = config
        self._prompt = prompt
        self._port = port
        self._opener = opener
        self._closer = closer
        self.public_url: Optional[str] = None

    async def expose(self) -> Optional[str]:
        exposure = self._config["exposure"]
        if not exposure["public_url"]:
            return None

        loop = asyncio.get_running_loop()
        try:
            if exposure["ask"]:
                should_expose = await ask_in_background(
                    self._prompt.confirm, "Generate a public URL to access this server?")
                if not should_expose:
                    return None

            logging.info("Generating public URL...")
            self.public_url = await loop.run_in_executor(None, self._opener, self._port)
            qr = render_qr(self.public_url)
        except Exception as e:
            logging.warning("Error starting tunnel. Restart program to get public URL.")
            logging.debug(f"Tunnel failure: {e!r}")
            return None

        print(f"Public URL: {self.public_url}")
        print(qr, markup=False, highlight=False)
        return self.public_url

    async def close(self):
        if self.public_url is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._closer, self.public_url)
        except Exception as e:
            logging.warning(f"Could not close tunnel: {e!r}")
        self.public_url = None
