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
import enum
import logging
from typing import Optional

from backend import (
    EVENT_DISCONNECTED,
    EVENT_LOGGED_ON,
    EVENT_WEB_SESSION,
    CredentialRejected,
    GameBackend,
    ListenerHandle,
    LogonResult,
    RefreshTokenCredential,
)
from credential_prompt import ask_in_background
from token_store import TokenStore, TokenStoreError


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    ACCOUNT_READY = "account_ready"
    COORDINATOR_READY = "coordinator_ready"


_TRANSITIONS = {
    SessionState.UNAUTHENTICATED: (SessionState.ACCOUNT_READY,),
    SessionState.ACCOUNT_READY: (SessionState.COORDINATOR_READY,),
    SessionState.COORDINATOR_READY: (),
}


class SessionStateError(Exception): pass


@dataclasses.dataclass
class Session:
    """
    live handle for "logged in as this account".
    only the session manager writes to it, the relay reads it.
    """
    backend: GameBackend
    app_id: int
    state: SessionState = SessionState.UNAUTHENTICATED
    steam_id: Optional[int] = None
    cookies: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def coordinator_ready(self) -> bool:
        return self.state is SessionState.COORDINATOR_READY


class SessionManager:

    def __init__(self, config, loop: asyncio.AbstractEventLoop, backend: GameBackend, token_store: TokenStore,
                 prompt):
        self._config = config
        self._loop = loop
        self._backend = backend
        self._token_store = token_store
        self._prompt = prompt
        self._listeners: list[ListenerHandle] = []
        self._tasks: set[asyncio.Task] = set()
        self.session = Session(backend, int(self._config["steam"]["app_id"]))

    def transition(self, new_state: SessionState):
        if new_state not in _TRANSITIONS[self.session.state]:
            raise SessionStateError(f"Cannot go from {self.session.state.value} to {new_state.value}")
        logging.debug(f"Session {self.session.state.value} -> {new_state.value}")
        self.session.state = new_state

    async def start(self) -> Session:
        """
        Log into the account, then attach the coordinator, in that order.

        Raises LogonError (or a subclass) when login fails for good; the caller is expected to exit.
        """
        stored_token = await self._token_store.load()

        if stored_token is not None:
            logging.info("Steam token found. Logging in...")
            try:
                result = await self._backend.log_on(RefreshTokenCredential(stored_token))
            except CredentialRejected:
                logging.warning("Steam token was rejected. Manual login required.")
                result = await self._interactive_log_on()
        else:
            logging.info("No Steam token found. Manual login required.")
            result = await self._interactive_log_on()

        logging.info("Logged into Steam")
        await self._account_ready(result, stored_token)
        await self._attach_coordinator()
        return self.session

    async def _interactive_log_on(self) -> LogonResult:
        credential = await ask_in_background(self._prompt.ask)
        logging.info("Logging in...")
        return await self._backend.log_on(credential)

    async def _account_ready(self, result: LogonResult, stored_token: Optional[str]):
        self.session.steam_id = result.steam_id
        self.transition(SessionState.ACCOUNT_READY)

        if result.refresh_token and result.refresh_token != stored_token:
            logging.info("Steam login token received")
            await self._persist_token(result.refresh_token)

        self.session.cookies = dict(await self._backend.web_session_cookies())
        logging.debug(f"Captured {len(self.session.cookies)} web session cookies")

        self._listeners.extend([
            self._backend.on(EVENT_WEB_SESSION, self._on_web_session),
            self._backend.on(EVENT_LOGGED_ON, self._on_logged_on),
            self._backend.on(EVENT_DISCONNECTED, self._on_disconnected),
        ])

        await self._backend.announce_presence(self.session.app_id)

    async def _persist_token(self, token: str):
        try:
            await self._token_store.save(token)
            logging.info("Steam login token saved")
        except TokenStoreError as e:
            logging.exception(e)
            logging.warning("Could not save the Steam login token, the next run will need a manual login")

    async def _attach_coordinator(self):
        logging.info("Connecting to the game coordinator...")
        await self._backend.attach_coordinator(self.session.app_id)
        self.transition(SessionState.COORDINATOR_READY)
        logging.info("Logged into CS:GO")

    def _on_web_session(self, cookies: dict):
        self.session.cookies = dict(cookies)
        logging.debug("Web session cookies replaced")

    def _on_logged_on(self):
        # a new account session has to announce the game again before the coordinator talks to it
        task = self._loop.create_task(self._backend.announce_presence(self.session.app_id))
        self._tasks.add(task)
        task.add_done_callback(self._announce_done)

    def _announce_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logging.warning(f"Could not announce presence: {task.exception()}")

    def _on_disconnected(self):
        logging.error("Disconnected from Steam. Restart the program to reconnect.")

    async def close(self):
        for handle in self._listeners:
            self._backend.remove_listener(handle)
        self._listeners.clear()
        for task in self._tasks:
            task.cancel()
        await self._backend.close()
