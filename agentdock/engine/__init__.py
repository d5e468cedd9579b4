"""Session core - per-session runtime and message state for agent CLI processes."""
from .models import (
    ExitInfo,
    HistoryRecord,
    HistoryType,
    MessageRole,
    MessageSettings,
    MessageState,
    MessageWithState,
    PendingInteractiveRequest,
    ProcessState,
    QueuedMessage,
    RuntimeUpdate,
    SessionActivity,
    SessionPhase,
    SessionRuntime,
    SessionStore,
    StoredEvent,
    TranscriptMessage,
)
from .config import CoreConfig
from .errors import (
    HistoryLoadError,
    QueueFullError,
    SessionCoreError,
    TransitionError,
    UnknownMessageError,
    UnknownSessionError,
)
from .lifecycle import is_valid_transition

__all__ = [
    # Services (lazy import to avoid circular deps)
    "SessionStoreService",
    "MessageStateService",
    "MessageStateMachine",
    "SessionRuntimeMachine",
    "SessionHydrator",
    "SessionStoreRegistry",
    # Models
    "ExitInfo",
    "HistoryRecord",
    "HistoryType",
    "MessageRole",
    "MessageSettings",
    "MessageState",
    "MessageWithState",
    "PendingInteractiveRequest",
    "ProcessState",
    "QueuedMessage",
    "RuntimeUpdate",
    "SessionActivity",
    "SessionPhase",
    "SessionRuntime",
    "SessionStore",
    "StoredEvent",
    "TranscriptMessage",
    "is_valid_transition",
    # Config
    "CoreConfig",
    # YAML config (lazy import)
    "load_yaml_config",
    # Errors
    "HistoryLoadError",
    "QueueFullError",
    "SessionCoreError",
    "TransitionError",
    "UnknownMessageError",
    "UnknownSessionError",
]


def __getattr__(name: str):
    if name == "SessionStoreService":
        from .session_store import SessionStoreService
        return SessionStoreService
    if name == "MessageStateService":
        from .message_service import MessageStateService
        return MessageStateService
    if name == "MessageStateMachine":
        from .message_state import MessageStateMachine
        return MessageStateMachine
    if name == "SessionRuntimeMachine":
        from .runtime_machine import SessionRuntimeMachine
        return SessionRuntimeMachine
    if name == "SessionHydrator":
        from .hydrator import SessionHydrator
        return SessionHydrator
    if name == "SessionStoreRegistry":
        from .registry import SessionStoreRegistry
        return SessionStoreRegistry
    if name == "load_yaml_config":
        from .yaml_config import load_yaml_config
        return load_yaml_config
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
