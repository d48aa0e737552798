"""
Bounded in-memory chat history used when history forwarding is enabled.
"""

from collections import deque
from typing import Deque, Dict, List, Union

ChatId = Union[int, str]


class ConversationHistory:
    """Keeps the most recent turns per chat, oldest evicted first."""

    def __init__(self, max_turns: int = 10):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self._turns: Dict[ChatId, Deque[Dict[str, str]]] = {}

    def append(self, chat_id: ChatId, role: str, content: str) -> None:
        turns = self._turns.setdefault(chat_id, deque(maxlen=self.max_turns))
        turns.append({"role": role, "content": content})

    def get(self, chat_id: ChatId) -> List[Dict[str, str]]:
        return list(self._turns.get(chat_id, ()))

    def clear(self, chat_id: ChatId) -> None:
        self._turns.pop(chat_id, None)

    def __len__(self) -> int:
        return len(self._turns)
