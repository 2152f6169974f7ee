"""Runs one inbound message end-to-end and turns failures into replies."""

import asyncio
import logging
import time

from .agent import AgentLoop
from .errors import (
    AuthenticationError,
    RateLimitError,
    RecursionLimitError,
    ToolUseFailedError,
    UpstreamError,
)
from .memory import ConversationMemory

logger = logging.getLogger(__name__)

TIMEOUT_REPLY = (
    "Sorry, that took too long to process. Please try asking your question in a simpler way "
    "or try again."
)
RECURSION_REPLY = (
    "I'm having trouble processing that. Please try a simpler question like:\n"
    '• "Show me my jobs"\n'
    '• "What was the last job I applied to?"\n'
    '• "Did Amazon respond?"'
)
TOOL_USE_REPLY = (
    "I had trouble understanding your request. Could you rephrase it? For example, try "
    '"show me my jobs" or "what jobs did I apply to?"'
)
AUTH_REPLY = "I'm having trouble connecting to my AI service. Please contact support."
RATE_LIMIT_REPLY = "I'm receiving too many requests right now. Please wait a moment and try again."
GENERIC_REPLY = (
    "Sorry, I encountered an error processing your request. Please try again or rephrase "
    "your message."
)


def apology_for(error: BaseException) -> str:
    """User-facing text for a failed turn; never includes the error itself."""
    if isinstance(error, asyncio.TimeoutError):
        return TIMEOUT_REPLY
    if isinstance(error, RecursionLimitError):
        return RECURSION_REPLY
    if isinstance(error, ToolUseFailedError):
        return TOOL_USE_REPLY
    if isinstance(error, AuthenticationError):
        return AUTH_REPLY
    if isinstance(error, RateLimitError):
        return RATE_LIMIT_REPLY
    return GENERIC_REPLY


class TurnCoordinator:
    """Entry point for chat messages: resolve() and clear_memory()."""

    def __init__(
        self,
        agent: AgentLoop,
        memory: ConversationMemory,
        *,
        timeout: float = 30.0,
        recursion_limit: int = 25,
    ):
        self.agent = agent
        self.memory = memory
        self.timeout = timeout
        self.recursion_limit = recursion_limit

    async def resolve(self, message_text: str, user_id: str) -> str:
        """Answer one message from a user.

        Turns from the same user run one at a time. The agent loop races a
        wall-clock timeout; when the timeout wins, the pending model or store
        call is abandoned rather than stopped, so a write already sent to the
        spreadsheet may still land. A failed turn keeps the user message and
        every finished tool exchange; only a half-done exchange is dropped.
        """
        if not isinstance(message_text, str) or not message_text.strip():
            raise ValueError("Invalid message text")
        if not user_id:
            raise ValueError("User ID is required")

        async with self.memory.lock(user_id):
            conversation = self.memory.get(user_id)
            started = time.monotonic()
            try:
                reply = await asyncio.wait_for(
                    self.agent.run(conversation, message_text, self.recursion_limit),
                    timeout=self.timeout,
                )
                if not reply.content.strip():
                    raise UpstreamError("No response generated from the agent")
            except (asyncio.TimeoutError, RecursionLimitError, UpstreamError) as e:
                conversation.drop_unfinished()
                elapsed = time.monotonic() - started
                logger.warning(f"Turn for {user_id} failed after {elapsed:.1f}s: {type(e).__name__}: {e}")
                return apology_for(e)
            except Exception as e:
                conversation.drop_unfinished()
                logger.exception(f"Unexpected error resolving message for {user_id}")
                return apology_for(e)

        elapsed = time.monotonic() - started
        logger.info(f"Answered {user_id} in {elapsed:.1f}s")
        return reply.content

    def clear_memory(self, user_id: str) -> bool:
        return self.memory.clear(user_id)
