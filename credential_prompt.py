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
import threading

from rich.prompt import Confirm, Prompt

from backend import InteractiveCredential
from logger import console


class CredentialPrompt:
    """blocking, run it in an executor from async code"""

    def ask(self) -> InteractiveCredential:
        username = Prompt.ask("Enter your Steam username:", console=console)
        password = Prompt.ask("Enter your Steam password:", console=console, password=True)
        steam_guard_code = Prompt.ask("Enter your Steam Guard code:", console=console)
        return InteractiveCredential(username.strip(), password, steam_guard_code.strip())

    def confirm(self, question: str) -> bool:
        return Confirm.ask(question, console=console)


async def ask_in_background(func, *args):
    """
    Run a blocking prompt without blocking the loop.

    Unlike run_in_executor the thread is a daemon: a prompt nobody answers never holds up shutdown.
    Cancelling the await abandons the answer.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def resolve(result=None, exception=None):
        if future.done():
            return
        if exception is not None:
            future.set_exception(exception)
        else:
            future.set_result(result)

    def target():
        try:
            result = func(*args)
        except Exception as e:
            outcome = (None, e)
        else:
            outcome = (result, None)
        if not loop.is_closed():
            loop.call_soon_threadsafe(resolve, *outcome)

    threading.Thread(target=target, name="prompt", daemon=True).start()
    return await future
