import asyncio
import json
from contextlib import asynccontextmanager

from chatbot_core.errors import StorageUnavailable
from chatbot_core.request_builder import RequestSpec
from chatbot_core.store import RecordStore


def data_line(fragment: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": fragment}}]})


DONE = "data: [DONE]"


class ScriptedTransport:
    """Plays back one script per ``open_stream`` call.

    A script item may be a line, an exception to raise mid-body, or an
    ``asyncio.Event`` to wait on before continuing.
    """

    def __init__(self, *scripts: list, connect_error: Exception | None = None):
        self._scripts = list(scripts)
        self._connect_error = connect_error
        self.requests: list[RequestSpec] = []
        self.opened = 0
        self.closed = 0
        self.aclosed = False

    @asynccontextmanager
    async def open_stream(self, request: RequestSpec):
        self.requests.append(request)
        await asyncio.sleep(0)
        if self._connect_error is not None:
            raise self._connect_error
        script = self._scripts.pop(0) if self._scripts else [DONE]
        self.opened += 1
        try:
            yield self._play(script)
        finally:
            self.closed += 1

    async def _play(self, script: list):
        for item in script:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            if isinstance(item, Exception):
                raise item
            await asyncio.sleep(0)
            yield item

    async def aclose(self) -> None:
        self.aclosed = True


class FailingSummaryStore(RecordStore):
    def put_conversation_summary(self, summary) -> None:
        raise StorageUnavailable("disk full")


class FailingReadStore(RecordStore):
    def list_messages(self, conversation_id: str):
        raise StorageUnavailable("database is locked")
