from __future__ import annotations

from datetime import UTC, datetime, timedelta

from chatbot_core.store.record_store import RecordStore


def prune_conversations(
    store: RecordStore,
    *,
    max_conversations: int,
    retention_days: int,
) -> list[str]:
    """Delete stale and overflow conversations. Returns the deleted ids."""
    summaries = store.list_conversations()
    doomed: list[str] = []

    if retention_days > 0:
        cutoff = (datetime.now(UTC) - timedelta(days=retention_days)).isoformat(timespec="milliseconds")
        doomed.extend(s.conversation_id for s in summaries if s.updated_at < cutoff)

    if max_conversations > 0:
        kept = [s for s in summaries if s.conversation_id not in doomed]
        doomed.extend(s.conversation_id for s in kept[max_conversations:])

    for conversation_id in doomed:
        store.delete_conversation(conversation_id)
    return doomed
