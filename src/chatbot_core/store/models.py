from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ConversationSummary:
    conversation_id: str
    last_prompt: str
    last_response: str
    updated_at: str
    attachment_refs: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Settings:
    dark_mode: bool = False
    voice_enabled: bool = False


@dataclass(frozen=True)
class UserProfile:
    display_name: str
    avatar_ref: str = ""
