from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from chatbot_core.message import Message, Role

COMPLETIONS_PATH = "/chat/completions"


@dataclass(frozen=True)
class RequestSpec:
    method: str
    url: str
    headers: Mapping[str, str]
    body: dict = field(default_factory=dict)

    @property
    def path(self) -> str:
        return COMPLETIONS_PATH


def build_completion_request(
    model: str,
    prior_messages: Iterable[Message],
    new_text: str,
    *,
    base_url: str,
    api_key: str,
    extra_headers: Mapping[str, str] | None = None,
) -> RequestSpec:
    """Build the streaming chat-completions request for one user turn.

    Prior turns keep their order and are followed by the new user turn. The
    bearer credential is passed through as given, empty included.
    """
    messages = [m.to_chat_message() for m in prior_messages]
    messages.append({"role": Role.USER.value, "content": new_text})

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    for name, value in (extra_headers or {}).items():
        if value:
            headers[name] = value

    return RequestSpec(
        method="POST",
        url=base_url.rstrip("/") + COMPLETIONS_PATH,
        headers=MappingProxyType(headers),
        body={"model": model, "messages": messages, "stream": True},
    )
