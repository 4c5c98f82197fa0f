from .models import ConversationMessage, ConversationThread
from .orchestrator import (
    ConversationOrchestrator,
    LoggingNotifier,
    NoPendingChallenge,
    Notifier,
    SendInProgress,
    SendOutcome,
    SendResult,
    create_orchestrator,
    decode_reply,
)
from .store import (
    ConversationStore,
    InMemoryThreadPersistence,
    JsonFileThreadPersistence,
    PersistenceFailure,
    ThreadNotFound,
)

__all__ = [
    "ConversationMessage",
    "ConversationThread",
    "ConversationOrchestrator",
    "LoggingNotifier",
    "NoPendingChallenge",
    "Notifier",
    "SendInProgress",
    "SendOutcome",
    "SendResult",
    "create_orchestrator",
    "decode_reply",
    "ConversationStore",
    "InMemoryThreadPersistence",
    "JsonFileThreadPersistence",
    "PersistenceFailure",
    "ThreadNotFound",
]
