from analytic_assistant.memory.conversation_store import ConversationStore, PersistenceGateway
from analytic_assistant.memory.models import PLACEHOLDER_TITLE, MessageRecord, SessionRecord
from analytic_assistant.memory.pruning import prune_memory
from analytic_assistant.memory.store import MemoryStore

__all__ = [
    "PLACEHOLDER_TITLE",
    "ConversationStore",
    "MemoryStore",
    "MessageRecord",
    "PersistenceGateway",
    "SessionRecord",
    "prune_memory",
]
