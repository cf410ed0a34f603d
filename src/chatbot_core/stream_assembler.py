from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from loguru import logger

from chatbot_core.errors import StreamInterrupted
from chatbot_core.message import Message

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

FragmentCallback = Callable[[Message, str], None]


@dataclass(frozen=True)
class StreamEvent:
    """One decoded line. ``done`` marks the sentinel; ``fragment`` may be empty."""

    done: bool = False
    fragment: str = ""


_IGNORED = StreamEvent()
_DONE = StreamEvent(done=True)


def parse_event_line(line: str) -> StreamEvent:
    """Decode a single framed line.

    Raises ``ValueError`` when a data line carries a payload that is not valid
    JSON. Lines without the data prefix (blank keep-alives, comments) decode to
    an empty event.
    """
    stripped = line.strip()
    if not stripped.startswith(DATA_PREFIX):
        return _IGNORED

    data = stripped[len(DATA_PREFIX):].strip()
    if data == DONE_SENTINEL:
        return _DONE

    payload = json.loads(data)
    if not isinstance(payload, dict):
        return _IGNORED
    if "error" in payload:
        logger.warning(f"Stream carried an error payload: {str(payload['error'])[:200]}")

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return _IGNORED
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return _IGNORED
    content = delta.get("content")
    if not isinstance(content, str):
        return _IGNORED
    return StreamEvent(fragment=content)


class StreamAssembler:
    """Applies streamed fragments to one in-flight assistant message.

    Lines are handled strictly in arrival order and each fragment is appended
    as soon as it is decoded. The assembler is the only writer of the target
    message while ``consume`` runs.
    """

    def __init__(self, target: Message, on_fragment: FragmentCallback | None = None):
        self._target = target
        self._on_fragment = on_fragment
        self.fragment_count = 0

    async def consume(self, lines: AsyncIterator[str]) -> None:
        async for line in lines:
            try:
                event = parse_event_line(line)
            except ValueError as ex:
                logger.warning(f"Skipping malformed stream line ({ex}): {line[:200]!r}")
                continue

            if event.done:
                logger.debug(
                    f"Stream complete: fragments={self.fragment_count}, "
                    f"content_len={len(self._target.content)}"
                )
                return

            if event.fragment:
                self._target.append_fragment(event.fragment)
                self.fragment_count += 1
                if self._on_fragment is not None:
                    self._on_fragment(self._target, event.fragment)

        raise StreamInterrupted(
            f"Stream closed before {DONE_SENTINEL} after {self.fragment_count} fragments"
        )
