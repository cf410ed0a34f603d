from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from chatbot_core.errors import StorageUnavailable
from chatbot_core.message import Message
from chatbot_core.store.models import ConversationSummary, Settings, UserProfile

_SINGLE_SLOT = 0


class RecordStore:
    """Durable key-value collections backed by one sqlite database.

    Collections: per-conversation message logs keyed by
    ``(conversation_id, idx)``, the conversation index, and the single-slot
    settings and user profile records. Every mutating call commits before it
    returns.
    """

    def __init__(self, db_path: str):
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._initialize_schema()
        except (OSError, sqlite3.Error) as ex:
            raise StorageUnavailable(f"Cannot open record store at {self._db_path}: {ex}") from ex

    def close(self) -> None:
        self._conn.close()

    # -- messages -----------------------------------------------------------

    def put_message(self, conversation_id: str, index: int, message: Message) -> None:
        record = message.to_record()
        with self._committing("put_message"):
            self._conn.execute(
                """
                INSERT OR REPLACE INTO messages
                    (conversation_id, idx, message_id, role, content, attachment_refs_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation_id,
                    index,
                    record["messageId"],
                    record["role"],
                    record["content"],
                    json.dumps(record["attachmentRefs"], ensure_ascii=True),
                    record["createdAt"],
                ),
            )

    def list_messages(self, conversation_id: str) -> list[Message]:
        rows = self._read(
            """
            SELECT message_id, role, content, attachment_refs_json, created_at
            FROM messages
            WHERE conversation_id = ?
            ORDER BY idx ASC
            """,
            (conversation_id,),
        )
        return [
            Message.from_record(
                {
                    "messageId": row["message_id"],
                    "conversationId": conversation_id,
                    "role": row["role"],
                    "content": row["content"],
                    "attachmentRefs": _parse_refs(row["attachment_refs_json"]),
                    "createdAt": row["created_at"],
                }
            )
            for row in rows
        ]

    # -- conversation index -------------------------------------------------

    def put_conversation_summary(self, summary: ConversationSummary) -> None:
        with self._committing("put_conversation_summary"):
            self._conn.execute(
                """
                INSERT OR REPLACE INTO conversations
                    (conversation_id, last_prompt, last_response, attachment_refs_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    summary.conversation_id,
                    summary.last_prompt,
                    summary.last_response,
                    json.dumps(list(summary.attachment_refs), ensure_ascii=True),
                    summary.updated_at,
                ),
            )

    def get_conversation_summary(self, conversation_id: str) -> ConversationSummary | None:
        rows = self._read(
            "SELECT * FROM conversations WHERE conversation_id = ? LIMIT 1",
            (conversation_id,),
        )
        return _to_summary(rows[0]) if rows else None

    def list_conversations(self, *, limit: int | None = None) -> list[ConversationSummary]:
        rows = self._read(
            """
            SELECT * FROM conversations
            ORDER BY updated_at DESC, conversation_id ASC
            LIMIT ?
            """,
            (-1 if limit is None else max(0, limit),),
        )
        return [_to_summary(row) for row in rows]

    def delete_conversation(self, conversation_id: str) -> None:
        with self._committing("delete_conversation"):
            self._conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            self._conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    # -- single-slot records ------------------------------------------------

    def get_settings(self) -> Settings:
        rows = self._read("SELECT dark_mode, voice_enabled FROM settings WHERE slot = ?", (_SINGLE_SLOT,))
        if not rows:
            return Settings()
        return Settings(dark_mode=bool(rows[0]["dark_mode"]), voice_enabled=bool(rows[0]["voice_enabled"]))

    def put_settings(self, settings: Settings) -> None:
        with self._committing("put_settings"):
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (slot, dark_mode, voice_enabled) VALUES (?, ?, ?)",
                (_SINGLE_SLOT, int(settings.dark_mode), int(settings.voice_enabled)),
            )

    def get_user_profile(self) -> UserProfile | None:
        rows = self._read("SELECT display_name, avatar_ref FROM user_profile WHERE slot = ?", (_SINGLE_SLOT,))
        if not rows:
            return None
        return UserProfile(display_name=rows[0]["display_name"], avatar_ref=rows[0]["avatar_ref"])

    def put_user_profile(self, profile: UserProfile) -> None:
        with self._committing("put_user_profile"):
            self._conn.execute(
                "INSERT OR REPLACE INTO user_profile (slot, display_name, avatar_ref) VALUES (?, ?, ?)",
                (_SINGLE_SLOT, profile.display_name, profile.avatar_ref),
            )

    # -- internals ----------------------------------------------------------

    @contextmanager
    def _committing(self, operation: str) -> Iterator[None]:
        try:
            yield
            self._conn.commit()
        except sqlite3.Error as ex:
            try:
                self._conn.rollback()
            except sqlite3.Error:
                logger.debug(f"Rollback after failed {operation} also failed")
            logger.error(f"Record store {operation} failed: {ex}")
            raise StorageUnavailable(f"{operation} failed: {ex}") from ex

    def _read(self, query: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(query, params).fetchall()
        except sqlite3.Error as ex:
            raise StorageUnavailable(f"Read failed: {ex}") from ex

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS messages (
                conversation_id TEXT NOT NULL,
                idx INTEGER NOT NULL,
                message_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                content TEXT NOT NULL,
                attachment_refs_json TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                PRIMARY KEY (conversation_id, idx)
            );

            CREATE TABLE IF NOT EXISTS conversations (
                conversation_id TEXT PRIMARY KEY,
                last_prompt TEXT NOT NULL,
                last_response TEXT NOT NULL,
                attachment_refs_json TEXT NOT NULL DEFAULT '[]',
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS settings (
                slot INTEGER PRIMARY KEY CHECK (slot = 0),
                dark_mode INTEGER NOT NULL CHECK (dark_mode IN (0, 1)),
                voice_enabled INTEGER NOT NULL CHECK (voice_enabled IN (0, 1))
            );

            CREATE TABLE IF NOT EXISTS user_profile (
                slot INTEGER PRIMARY KEY CHECK (slot = 0),
                display_name TEXT NOT NULL,
                avatar_ref TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_updated
                ON conversations(updated_at);
            """
        )
        self._conn.commit()


def _parse_refs(raw: str) -> tuple[str, ...]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return ()
    if isinstance(parsed, list):
        return tuple(str(item) for item in parsed)
    return ()


def _to_summary(row: sqlite3.Row) -> ConversationSummary:
    return ConversationSummary(
        conversation_id=row["conversation_id"],
        last_prompt=row["last_prompt"],
        last_response=row["last_response"],
        attachment_refs=_parse_refs(row["attachment_refs_json"]),
        updated_at=row["updated_at"],
    )
