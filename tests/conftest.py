"""Shared test fixtures.

FakeBackend stands in for the Steam gateway, FakePrompt for the operator.
"""

import asyncio
from pathlib import Path

import pytest

from backend import GameBackend, InteractiveCredential, LogonResult
from config import Config
from inventory import InventoryFetchError
from server_data import ServerData
from session_manager import Session, SessionState
from token_store import TokenStore

STEAM_ID = 76561198000000001


class FakeBackend(GameBackend):

    def __init__(self, logon_outcomes=None, cookies=None, refresh_token=None):
        super().__init__()
        self.calls: list[tuple] = []
        self.logon_outcomes = list(logon_outcomes or [])
        self.cookies = cookies if cookies is not None else {"steamLoginSecure": "secure", "sessionid": "sid"}
        self.refresh_token = refresh_token
        self.open_crate_error = None
        self.closed = False

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def log_on(self, credential):
        self.calls.append(("log_on", credential))
        await asyncio.sleep(0.01)
        if self.logon_outcomes:
            outcome = self.logon_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return LogonResult(STEAM_ID, self.refresh_token)

    async def web_session_cookies(self):
        self.calls.append(("web_session_cookies",))
        await asyncio.sleep(0.01)
        return dict(self.cookies)

    async def announce_presence(self, app_id):
        self.calls.append(("announce_presence", app_id))

    async def attach_coordinator(self, app_id):
        self.calls.append(("attach_coordinator", app_id))
        await asyncio.sleep(0)

    async def open_crate(self, key_id, crate_id):
        self.calls.append(("open_crate", key_id, crate_id))
        if self.open_crate_error is not None:
            raise self.open_crate_error

    async def close(self):
        self.closed = True


class FakePrompt:

    def __init__(self, credential=None, confirm_answer=True):
        self.credential = credential or InteractiveCredential("gaben", "hunter2", "ABCDE")
        self.confirm_answer = confirm_answer
        self.asked = 0
        self.questions: list[str] = []

    def ask(self):
        self.asked += 1
        return self.credential

    def confirm(self, question):
        self.questions.append(question)
        return self.confirm_answer


class FakeInventory:

    def __init__(self, result=None, error=None):
        self.result = result if result is not None else {"assets": [], "total_inventory_count": 0}
        self.error = error
        self.requests: list[tuple] = []

    async def fetch(self, steam_id, cookies):
        self.requests.append((steam_id, dict(cookies)))
        if self.error is not None:
            raise InventoryFetchError(self.error)
        return self.result


@pytest.fixture
def config() -> dict:
    return Config(Path("unused.toml")).config_schema({
        "server": {"host": "127.0.0.1", "port": 0},
        "exposure": {"ask": False, "public_url": False, "mdns": False},
    })


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def prompt() -> FakePrompt:
    return FakePrompt()


@pytest.fixture
def token_store(tmp_path: Path) -> TokenStore:
    return TokenStore(tmp_path / "data" / ".token")


@pytest.fixture
def ready_session(backend: FakeBackend) -> Session:
    return Session(
        backend,
        730,
        state=SessionState.COORDINATOR_READY,
        steam_id=STEAM_ID,
        cookies={"steamLoginSecure": "secure"},
    )


@pytest.fixture
def server_data() -> ServerData:
    return ServerData()
