from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message:
    """One conversational turn.

    ``role``, ``message_id`` and ``created_at`` are fixed at construction.
    ``content`` only grows, through ``append_fragment``.
    """

    __slots__ = ("_message_id", "_conversation_id", "_role", "_parts", "_attachment_refs", "_created_at")

    def __init__(
        self,
        *,
        role: Role | str,
        conversation_id: str,
        message_id: str,
        content: str = "",
        attachment_refs: list[str] | tuple[str, ...] = (),
        created_at: str | None = None,
    ):
        self._role = Role(role)
        self._conversation_id = conversation_id
        self._message_id = str(message_id)
        self._parts: list[str] = [content] if content else []
        self._attachment_refs = tuple(attachment_refs)
        self._created_at = created_at or utc_now()

    @property
    def message_id(self) -> str:
        return self._message_id

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def role(self) -> Role:
        return self._role

    @property
    def attachment_refs(self) -> tuple[str, ...]:
        return self._attachment_refs

    @property
    def created_at(self) -> str:
        return self._created_at

    @property
    def content(self) -> str:
        if len(self._parts) > 1:
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    def append_fragment(self, text: str) -> None:
        if text:
            self._parts.append(text)

    def to_chat_message(self) -> dict:
        return {"role": self._role.value, "content": self.content}

    def to_record(self) -> dict:
        return {
            "messageId": self._message_id,
            "conversationId": self._conversation_id,
            "role": self._role.value,
            "content": self.content,
            "attachmentRefs": list(self._attachment_refs),
            "createdAt": self._created_at,
        }

    @classmethod
    def from_record(cls, record: dict) -> Message:
        return cls(
            role=record["role"],
            conversation_id=record["conversationId"],
            message_id=record["messageId"],
            content=record.get("content", ""),
            attachment_refs=record.get("attachmentRefs", ()),
            created_at=record["createdAt"],
        )

    def __repr__(self) -> str:
        return (
            f"Message(id={self._message_id!r}, conversation={self._conversation_id!r}, "
            f"role={self._role.value!r}, len={len(self.content)})"
        )
