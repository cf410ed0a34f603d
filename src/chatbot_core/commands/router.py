from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_new: Callable[[], Awaitable[None]],
        on_resume: Callable[[str], Awaitable[None]],
        on_model: Callable[[str], Awaitable[None]],
        on_list: Callable[[], Awaitable[None]],
        on_delete: Callable[[str], Awaitable[None]],
        on_attach: Callable[[list[str]], Awaitable[None]],
        on_settings: Callable[[str], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_new = on_new
        self._on_resume = on_resume
        self._on_model = on_model
        self._on_list = on_list
        self._on_delete = on_delete
        self._on_attach = on_attach
        self._on_settings = on_settings
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, rest = trimmed.partition(" ")
        rest = rest.strip()

        if command == "/help":
            await self._on_help()
            return True
        if command == "/new":
            await self._on_new()
            return True
        if command == "/resume":
            await self._on_resume(rest)
            return True
        if command == "/model":
            await self._on_model(rest)
            return True
        if command == "/list":
            await self._on_list()
            return True
        if command == "/delete":
            await self._on_delete(rest)
            return True
        if command == "/attach":
            await self._on_attach(rest.split())
            return True
        if command == "/settings":
            await self._on_settings(rest)
            return True

        self._on_unknown(trimmed)
        return True
