"""Tests for the Steam gateway helpers. Needs the steam extra."""

import asyncio
import logging
import struct

import pytest

pytest.importorskip("steam.client")
pytest.importorskip("csgo")

from steam.client import SteamClient  # noqa: E402
from steam.enums import EResult  # noqa: E402

from backend import (  # noqa: E402
    CredentialRejected,
    InteractiveCredential,
    LogonError,
    LogonResult,
    RefreshTokenCredential,
    SecondFactorRejected,
)
from steam_gateway import SteamGateway, check_logon_result, crate_payload, pack_token, unpack_token  # noqa: E402


def test_ok_result_passes() -> None:
    check_logon_result(EResult.OK)


@pytest.mark.parametrize("result", [
    EResult.TwoFactorCodeMismatch,
    EResult.AccountLoginDeniedNeedTwoFactor,
    EResult.InvalidLoginAuthCode,
    EResult.AccountLogonDenied,
])
def test_second_factor_failures(result) -> None:
    with pytest.raises(SecondFactorRejected) as excinfo:
        check_logon_result(result)
    assert excinfo.value.result == result


def test_rejected_password() -> None:
    with pytest.raises(CredentialRejected):
        check_logon_result(EResult.InvalidPassword)


def test_other_failures_are_plain_logon_errors() -> None:
    with pytest.raises(LogonError) as excinfo:
        check_logon_result(EResult.ServiceUnavailable)
    assert not isinstance(excinfo.value, (CredentialRejected, SecondFactorRejected))


def test_token_round_trip() -> None:
    assert unpack_token(pack_token("gaben", "key:with:colons")) == ("gaben", "key:with:colons")


@pytest.mark.parametrize("token", ["no-separator", ":key", "gaben:"])
def test_malformed_token_is_rejected(token) -> None:
    with pytest.raises(CredentialRejected):
        unpack_token(token)


def test_crate_payload() -> None:
    assert crate_payload("12", 34) == struct.pack("<QQ", 12, 34)


@pytest.mark.parametrize("key_id", ["abc", -1, None])
def test_crate_payload_rejects_bad_ids(key_id) -> None:
    with pytest.raises(ValueError):
        crate_payload(key_id, 1)


class StubSteamId:
    as_64 = 76561198000000001


class StubSteamClient:
    """stands in for SteamClient, login always succeeds"""

    def __init__(self, login_key=None, issued_key=None):
        self.login_key = login_key
        self.issued_key = issued_key
        self.steam_id = StubSteamId()
        self.waited_for: list = []

    def login(self, username, password=None, login_key=None, two_factor_code=None):
        return EResult.OK

    def wait_event(self, event, timeout=None):
        self.waited_for.append(event)
        if self.issued_key is None:
            return None
        self.login_key = self.issued_key
        return (self.issued_key,)


def gateway_with(client: StubSteamClient) -> SteamGateway:
    gateway = SteamGateway(asyncio.new_event_loop())
    gateway._client = client
    return gateway


def test_interactive_login_without_login_key_warns(caplog) -> None:
    gateway = gateway_with(StubSteamClient())

    with caplog.at_level(logging.WARNING):
        result = gateway._log_on(InteractiveCredential("gaben", "hunter2", "ABCDE"))

    assert result == LogonResult(StubSteamId.as_64, None)
    assert gateway._client.waited_for == [SteamClient.EVENT_NEW_LOGIN_KEY]
    assert "next run will need a manual login" in caplog.text
    gateway._loop.close()


def test_interactive_login_returns_issued_login_key(caplog) -> None:
    gateway = gateway_with(StubSteamClient(issued_key="key"))

    with caplog.at_level(logging.WARNING):
        result = gateway._log_on(InteractiveCredential("gaben", "hunter2", "ABCDE"))

    assert result.refresh_token == pack_token("gaben", "key")
    assert "manual login" not in caplog.text
    gateway._loop.close()


def test_stored_token_login_does_not_wait_for_a_new_key() -> None:
    gateway = gateway_with(StubSteamClient(login_key="key"))

    result = gateway._log_on(RefreshTokenCredential(pack_token("gaben", "key")))

    assert result.refresh_token is None
    assert gateway._client.waited_for == []
    gateway._loop.close()
