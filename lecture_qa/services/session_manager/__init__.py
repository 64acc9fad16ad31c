from lecture_qa.services.session_manager.manager import SessionRegistryManager
from lecture_qa.services.session_manager.session import (
    EMPTY_MEMORY_PLACEHOLDER,
    ChatMemory,
    HistoryEntry,
    Session,
    SessionOptions,
)

__all__ = [
    "SessionRegistryManager",
    "Session",
    "SessionOptions",
    "ChatMemory",
    "HistoryEntry",
    "EMPTY_MEMORY_PLACEHOLDER",
]
