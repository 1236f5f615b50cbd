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
import dataclasses
import uuid
from typing import Optional

from backend import ListenerHandle


@dataclasses.dataclass(eq=False)
class RelayConnection:
    websocket: object
    cid: str = dataclasses.field(default_factory=lambda: uuid.uuid4().hex)
    listeners: list[ListenerHandle] = dataclasses.field(default_factory=list)
    outbox: asyncio.Queue = dataclasses.field(default_factory=asyncio.Queue)  # packets, in send order
    closed: bool = False


class ServerData:

    def __init__(self):
        self.connections: dict[str, RelayConnection] = dict()
        self.active_connection: Optional[RelayConnection] = None

        self.shutdown_event = asyncio.Event()
