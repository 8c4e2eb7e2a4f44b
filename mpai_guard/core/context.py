"""
Conversation context windowing.

Loads prior turns for a session and bounds them to the most recent N
exchanges before they are sent to the analysis model.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from mpai_guard.storage.models import SessionExchange
from mpai_guard.storage.repository import SessionRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXCHANGES = 10


@dataclass(frozen=True)
class ConversationTurn:
    role: str  # "user" or "assistant"
    content: str
    timestamp: Optional[datetime] = None

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ContextWindowResult:
    """Turns to send, in chronological order, plus truncation accounting.

    ``degraded`` is True when the store could not be read and the context
    fell back to empty.
    """
    turns: List[ConversationTurn] = field(default_factory=list)
    message_count: int = 0
    total_message_count: int = 0
    exchange_count: int = 0
    degraded: bool = False

    @property
    def truncated(self) -> bool:
        return self.message_count < self.total_message_count

    def to_messages(self) -> List[Dict[str, str]]:
        return [turn.to_message() for turn in self.turns]

    def serialized_length(self) -> int:
        """Length of the turns serialized as a compact JSON message list."""
        if not self.turns:
            return len("[]")
        return len(json.dumps(self.to_messages(), separators=(",", ":"), ensure_ascii=False))


def _exchange_turns(exchange: SessionExchange) -> List[ConversationTurn]:
    turns = []
    if exchange.user_query:
        turns.append(ConversationTurn("user", exchange.user_query, exchange.timestamp))
    if exchange.response:
        turns.append(ConversationTurn("assistant", exchange.response, exchange.timestamp))
    return turns


class ContextWindow:
    """Loads bounded conversation history from the session store."""

    def __init__(self, session_repository: SessionRepository,
                 max_exchanges: int = DEFAULT_MAX_EXCHANGES):
        self.session_repository = session_repository
        self.max_exchanges = max_exchanges

    def load(self, user_id: str, session_id: Optional[str],
             max_exchanges: Optional[int] = None) -> ContextWindowResult:
        """Load the most recent exchanges of a session.

        Each stored exchange contributes its user turn and its assistant turn
        when present. The window keeps the last ``max_exchanges`` exchanges
        (``2 * max_exchanges`` turns) and reports the untruncated total.

        Args:
            user_id: Owner of the session
            session_id: Session to load; ``None`` means a new session
            max_exchanges: Window size, defaults to the instance setting

        Returns:
            ContextWindowResult; an empty result if the store is unavailable
        """
        if not session_id:
            return ContextWindowResult()

        limit = self.max_exchanges if max_exchanges is None else max_exchanges

        try:
            newest_first = self.session_repository.query_session(user_id, session_id)
        except Exception as e:
            logger.warning("Failed to load prior messages for session %s: %s", session_id, e)
            return ContextWindowResult(degraded=True)

        chronological = list(reversed(newest_first))
        total_turns = sum(len(_exchange_turns(ex)) for ex in chronological)
        window = chronological[-limit:] if limit > 0 else []
        turns = [turn for ex in window for turn in _exchange_turns(ex)]

        if turns:
            logger.info(
                "Loading context: %d of %d messages (last %d exchanges)",
                len(turns), total_turns, limit,
            )
        else:
            logger.info("No prior messages found for session %s (new session)", session_id)

        return ContextWindowResult(
            turns=turns,
            message_count=len(turns),
            total_message_count=total_turns,
            exchange_count=len(chronological),
        )
