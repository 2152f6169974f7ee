"""Per-user conversation memory held for the lifetime of the process."""

import asyncio
import logging
from typing import Iterable

from .models import ChatMessage

logger = logging.getLogger(__name__)


class Conversation:
    """Append-only transcript for one user."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._messages: list[ChatMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def extend(self, messages: Iterable[ChatMessage]) -> None:
        self._messages.extend(messages)

    def drop_unfinished(self) -> int:
        """Remove a trailing exchange that an interrupted turn left half done.

        That is a last assistant turn whose tool calls did not all get a
        result (together with the results that did arrive), or a last
        assistant turn with no content and no tool calls. Completed tool
        exchanges and user turns are kept. Returns how many turns were removed.
        """
        for index in range(len(self._messages) - 1, -1, -1):
            message = self._messages[index]
            if message.role == "tool":
                continue
            if message.role != "assistant":
                return 0

            if message.tool_calls:
                answered = {m.tool_call_id for m in self._messages[index + 1:]}
                finished = all(call.id in answered for call in message.tool_calls)
            else:
                finished = bool(message.content.strip())

            if finished:
                return 0
            removed = len(self._messages) - index
            del self._messages[index:]
            return removed
        return 0


class ConversationMemory:
    """Owns one Conversation and one turn lock per user id.

    Locks outlive clear(), so a turn waiting on a user's lock always runs
    against the conversation stored once it gets the lock.
    """

    def __init__(self):
        self._conversations: dict[str, Conversation] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def lock(self, user_id: str) -> asyncio.Lock:
        """The lock serializing turns for one user."""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def get(self, user_id: str) -> Conversation:
        """Return the user's conversation, creating an empty one on first use."""
        conversation = self._conversations.get(user_id)
        if conversation is None:
            conversation = Conversation(user_id)
            self._conversations[user_id] = conversation
            logger.debug(f"Started conversation for {user_id}")
        return conversation

    def clear(self, user_id: str) -> bool:
        """Forget a user's conversation. Returns True if one existed."""
        if self._conversations.pop(user_id, None) is None:
            return False
        logger.info(f"Cleared conversation for {user_id}")
        return True
