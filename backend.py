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

import abc
import dataclasses
import logging
from collections import defaultdict
from typing import Callable, Optional, Union

EVENT_LOGGED_ON = "logged_on"
EVENT_WEB_SESSION = "web_session"
EVENT_ITEM_ACQUIRED = "item_acquired"
EVENT_CRATE_OPEN_FAILURE = "crate_open_failure"
EVENT_DISCONNECTED = "disconnected"


@dataclasses.dataclass(frozen=True)
class RefreshTokenCredential:
    token: str


@dataclasses.dataclass(frozen=True)
class InteractiveCredential:
    username: str
    password: str
    second_factor: str

    def __repr__(self):
        return f"InteractiveCredential(username={self.username!r})"


Credential = Union[RefreshTokenCredential, InteractiveCredential]


@dataclasses.dataclass
class LogonResult:
    steam_id: int
    refresh_token: Optional[str] = None  # only set when the backend issued a new one


class LogonError(Exception):

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class CredentialRejected(LogonError): pass


class SecondFactorRejected(LogonError): pass


@dataclasses.dataclass(frozen=True, eq=False)
class ListenerHandle:
    event: str
    callback: Callable


class EventEmitter:

    def __init__(self):
        self._listeners: dict[str, list[ListenerHandle]] = defaultdict(list)

    def on(self, event: str, callback: Callable) -> ListenerHandle:
        handle = ListenerHandle(event, callback)
        self._listeners[event].append(handle)
        return handle

    def remove_listener(self, handle: ListenerHandle):
        listeners = self._listeners.get(handle.event, [])
        if handle in listeners:
            listeners.remove(handle)

    def emit(self, event: str, *args):
        # copy, listeners may deregister while being called
        for handle in list(self._listeners.get(event, [])):
            try:
                handle.callback(*args)
            except Exception as e:
                logging.exception(e)
                logging.warning(f"Listener for {event} failed")

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(listeners) for listeners in self._listeners.values())


class GameBackend(EventEmitter, abc.ABC):
    """
    account/presence service and game coordinator, as seen by the session manager and the relay.

    events:
      logged_on()                  every account logon, reconnects included
      web_session(cookies: dict)   new web cookies
      item_acquired(item: dict)    an item was added to the inventory
      crate_open_failure()         the coordinator refused an unlock request
      disconnected()               the account session dropped
    """

    @abc.abstractmethod
    async def log_on(self, credential: Credential) -> LogonResult: ...

    @abc.abstractmethod
    async def web_session_cookies(self) -> dict[str, str]: ...

    @abc.abstractmethod
    async def announce_presence(self, app_id: int): ...

    @abc.abstractmethod
    async def attach_coordinator(self, app_id: int): ...

    @abc.abstractmethod
    async def open_crate(self, key_id, crate_id): ...

    async def close(self):
        pass
