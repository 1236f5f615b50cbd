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
import queue
import struct
import threading
from typing import Optional

import gevent
from csgo.client import CSGOClient
from csgo.enums import ESOType
from google.protobuf.json_format import MessageToDict
from steam.client import SteamClient
from steam.client.gc import GameCoordinator
from steam.core.msg import GCMsgHdr
from steam.enums import EResult

from backend import (
    EVENT_CRATE_OPEN_FAILURE,
    EVENT_DISCONNECTED,
    EVENT_ITEM_ACQUIRED,
    EVENT_LOGGED_ON,
    EVENT_WEB_SESSION,
    CredentialRejected,
    GameBackend,
    InteractiveCredential,
    LogonError,
    LogonResult,
    RefreshTokenCredential,
    SecondFactorRejected,
)

# steam and csgo are gevent libraries. They live in one thread with its own hub; asyncio talks to
# that thread through a call queue and gets events back through call_soon_threadsafe.

# raw (non protobuf) item messages
UNLOCK_CRATE_MSG = 1007
UNLOCK_CRATE_RESPONSE_MSG = 1008

LOGIN_KEY_TIMEOUT = 10
CALL_POLL_INTERVAL = 0.05

SECOND_FACTOR_RESULTS = (
    EResult.TwoFactorCodeMismatch,
    EResult.AccountLoginDeniedNeedTwoFactor,
    EResult.InvalidLoginAuthCode,
    EResult.AccountLogonDenied,
)
CREDENTIAL_RESULTS = (
    EResult.InvalidPassword,
    EResult.AccessDenied,
)


def check_logon_result(result: EResult):
    if result == EResult.OK:
        return
    if result in SECOND_FACTOR_RESULTS:
        raise SecondFactorRejected(f"Steam Guard code rejected ({result!r})", result)
    if result in CREDENTIAL_RESULTS:
        raise CredentialRejected(f"Steam rejected the credentials ({result!r})", result)
    raise LogonError(f"Steam login failed ({result!r})", result)


def pack_token(account_name: str, login_key: str) -> str:
    return f"{account_name}:{login_key}"


def unpack_token(token: str) -> tuple[str, str]:
    account_name, separator, login_key = token.partition(":")
    if not (separator and account_name and login_key):
        raise CredentialRejected("Stored Steam token is malformed")
    return account_name, login_key


def crate_payload(key_id, crate_id) -> bytes:
    try:
        return struct.pack("<QQ", int(key_id), int(crate_id))
    except (struct.error, TypeError) as e:
        raise ValueError(f"Invalid item id: {e}") from e


def _resolve(future: asyncio.Future, result=None, exception: Optional[BaseException] = None):
    if future.done():
        return
    if exception is not None:
        future.set_exception(exception)
    else:
        future.set_result(result)


class RelayCSGOClient(CSGOClient):

    def _process_gc_message(self, emsg, header, payload):
        # CSGOClient drops messages it has no protobuf for
        if int(emsg) == UNLOCK_CRATE_RESPONSE_MSG:
            self.emit(UNLOCK_CRATE_RESPONSE_MSG, payload)
            return
        super()._process_gc_message(emsg, header, payload)


class SteamGateway(GameBackend):

    def __init__(self, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._loop = loop
        self._calls = queue.Queue()
        self._stopping = threading.Event()
        self._thread = threading.Thread(target=self._run, name="steam-gateway", daemon=True)
        self._client: Optional[SteamClient] = None
        self._csgo: Optional[RelayCSGOClient] = None
        self._coordinator_ready = False

    def start(self):
        self._thread.start()

    def _run(self):
        self._client = SteamClient()
        self._csgo = RelayCSGOClient(self._client)

        self._client.on(SteamClient.EVENT_LOGGED_ON, self._on_logged_on)
        self._client.on(SteamClient.EVENT_DISCONNECTED, self._on_disconnected)
        self._csgo.socache.on(('new', ESOType.CSOEconItem), self._on_new_item)
        self._csgo.on(UNLOCK_CRATE_RESPONSE_MSG, self._on_unlock_crate_response)

        while not self._stopping.is_set():
            try:
                func, args, future = self._calls.get_nowait()
            except queue.Empty:
                gevent.sleep(CALL_POLL_INTERVAL)
                continue
            gevent.spawn(self._execute, func, args, future)

        if self._client.logged_on:
            self._client.logout()
        self._client.disconnect()

    def _execute(self, func, args, future: asyncio.Future):
        try:
            result = func(*args)
        except Exception as e:
            self._call_soon(_resolve, future, None, e)
        else:
            self._call_soon(_resolve, future, result)

    def _call_soon(self, callback, *args):
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    def _emit_threadsafe(self, event: str, *args):
        self._call_soon(self.emit, event, *args)

    async def _call(self, func, *args):
        if not self._thread.is_alive():
            raise LogonError("Steam gateway is not running")
        future = self._loop.create_future()
        self._calls.put((func, args, future))
        return await future

    # gevent side

    def _log_on(self, credential) -> LogonResult:
        used_login_key = None
        if isinstance(credential, RefreshTokenCredential):
            account_name, used_login_key = unpack_token(credential.token)
            result = self._client.login(account_name, login_key=used_login_key)
        elif isinstance(credential, InteractiveCredential):
            account_name = credential.username
            result = self._client.login(account_name, credential.password,
                                        two_factor_code=credential.second_factor)
        else:
            raise TypeError(f"Unsupported credential {credential!r}")

        check_logon_result(EResult(result))

        if self._client.login_key is None and isinstance(credential, InteractiveCredential):
            if self._client.wait_event(SteamClient.EVENT_NEW_LOGIN_KEY, timeout=LOGIN_KEY_TIMEOUT) is None:
                logging.warning("Steam did not issue a login token, the next run will need a manual login")

        refresh_token = None
        if self._client.login_key and self._client.login_key != used_login_key:
            refresh_token = pack_token(account_name, self._client.login_key)

        return LogonResult(self._client.steam_id.as_64, refresh_token)

    def _web_session_cookies(self) -> dict:
        cookies = self._client.get_web_session_cookies()
        if not cookies:
            raise LogonError("Could not get web session cookies")
        self._emit_threadsafe(EVENT_WEB_SESSION, dict(cookies))
        return dict(cookies)

    def _announce_presence(self, app_id: int):
        self._client.games_played([app_id])

    def _attach_coordinator(self, app_id: int):
        if app_id != self._csgo.app_id:
            raise LogonError(f"Coordinator client only speaks app {self._csgo.app_id}, not {app_id}")
        self._csgo.launch()
        self._csgo.wait_event('ready')
        self._coordinator_ready = True

    def _open_crate(self, key_id, crate_id):
        GameCoordinator.send(self._csgo, GCMsgHdr(UNLOCK_CRATE_MSG), crate_payload(key_id, crate_id))

    def _on_logged_on(self):
        self._emit_threadsafe(EVENT_LOGGED_ON)

    def _on_disconnected(self):
        self._coordinator_ready = False
        self._emit_threadsafe(EVENT_DISCONNECTED)

    def _on_new_item(self, item):
        # the initial cache load also reports every item as new
        if not self._coordinator_ready:
            return
        self._emit_threadsafe(EVENT_ITEM_ACQUIRED, MessageToDict(item, preserving_proto_field_name=True))

    def _on_unlock_crate_response(self, payload: bytes):
        if len(payload) >= 4 and struct.unpack_from("<I", payload)[0] != 0:
            self._emit_threadsafe(EVENT_CRATE_OPEN_FAILURE)

    # asyncio side

    async def log_on(self, credential) -> LogonResult:
        return await self._call(self._log_on, credential)

    async def web_session_cookies(self) -> dict[str, str]:
        return await self._call(self._web_session_cookies)

    async def announce_presence(self, app_id: int):
        await self._call(self._announce_presence, app_id)

    async def attach_coordinator(self, app_id: int):
        await self._call(self._attach_coordinator, app_id)

    async def open_crate(self, key_id, crate_id):
        crate_payload(key_id, crate_id)  # bad ids fail here, not in the gevent thread
        await self._call(self._open_crate, key_id, crate_id)

    async def close(self):
        self._stopping.set()
        if self._thread.is_alive():
            await self._loop.run_in_executor(None, self._thread.join, 5)
        logging.debug("Steam gateway stopped")
