from chatbot_core.store.models import ConversationSummary, Settings, UserProfile
from chatbot_core.store.pruning import prune_conversations
from chatbot_core.store.record_store import RecordStore

__all__ = [
    "ConversationSummary",
    "RecordStore",
    "Settings",
    "UserProfile",
    "prune_conversations",
]
