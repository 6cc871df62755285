"""Per-conversation state carried explicitly through every pipeline call."""
from __future__ import annotations

import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

HISTORY_LIMIT = 10
HISTORY_PROMPT_MESSAGES = 6
DEFAULT_SESSION_CAPACITY = 1000


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """One message of a conversation about ``document_id``."""

    document_id: str
    role: str
    content: str


@dataclass(slots=True)
class SessionContext:
    """Which document a conversation is currently asking about.

    The last :data:`HISTORY_LIMIT` messages are kept; older ones drop off.
    """

    session_id: str
    active_document_id: Optional[str] = None
    history: Deque[ConversationTurn] = field(
        default_factory=lambda: deque(maxlen=HISTORY_LIMIT), repr=False
    )

    def record_exchange(self, document_id: str, question: str, answer: str) -> None:
        self.history.append(ConversationTurn(document_id, "user", question))
        self.history.append(ConversationTurn(document_id, "assistant", answer))

    def recent_history(
        self, document_id: str, limit: int = HISTORY_PROMPT_MESSAGES
    ) -> List[ConversationTurn]:
        """Latest ``limit`` messages exchanged about ``document_id``, oldest first."""

        if limit <= 0:
            return []
        turns = [turn for turn in self.history if turn.document_id == document_id]
        return turns[-limit:]

    def reset(self) -> None:
        self.active_document_id = None
        self.history.clear()


class SessionRegistry:
    """Thread-safe map of session ids to their :class:`SessionContext`.

    At most ``capacity`` sessions are kept; the least recently used one is
    dropped when a new session would exceed it.
    """

    def __init__(self, capacity: int = DEFAULT_SESSION_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be a positive integer")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._sessions: "OrderedDict[str, SessionContext]" = OrderedDict()

    def get(self, session_id: str) -> SessionContext:
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                context = SessionContext(session_id=session_id)
                self._sessions[session_id] = context
                while len(self._sessions) > self.capacity:
                    self._sessions.popitem(last=False)
            else:
                self._sessions.move_to_end(session_id)
            return context

    def forget_document(self, document_id: str) -> None:
        """Drop ``document_id`` as the active document of every session."""

        with self._lock:
            for context in self._sessions.values():
                if context.active_document_id == document_id:
                    context.active_document_id = None

    def clear(self) -> None:
        with self._lock:
            for context in self._sessions.values():
                context.reset()
            self._sessions.clear()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


__all__ = [
    "ConversationTurn",
    "HISTORY_LIMIT",
    "HISTORY_PROMPT_MESSAGES",
    "SessionContext",
    "SessionRegistry",
]
