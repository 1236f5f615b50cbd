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
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import platformdirs

TOKEN_FILE_NAME = ".token"


class TokenStoreError(Exception): pass


class TokenStore:
    """
    single slot holding the refresh token between runs.
    the record is never deleted here; removing the file by hand forces an interactive login.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @staticmethod
    def default_path(app_name: str) -> Path:
        return Path(platformdirs.user_data_dir(app_name, appauthor=False)) / TOKEN_FILE_NAME

    async def initialize(self):
        try:
            if await aiofiles.os.path.exists(self.path):
                return
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(self.path, 'w') as token_file:
                await token_file.write("")
            logging.debug(f"Created empty token record at {self.path}")
        except OSError as e:
            logging.exception(e)
            logging.warning(f"Could not create token record at {self.path}")

    async def load(self) -> Optional[str]:
        await self.initialize()
        try:
            async with aiofiles.open(self.path, 'r') as token_file:
                token = (await token_file.read()).strip()
        except OSError as e:
            logging.exception(e)
            logging.warning(f"Could not read token record at {self.path}")
            return None

        return token or None

    async def save(self, token: str):
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(self.path, 'w') as token_file:
                await token_file.write(token)
        except OSError as e:
            raise TokenStoreError(f"Could not write token record at {self.path}") from e
        logging.debug(f"Token record at {self.path} updated")
