"""Tool-calling agent loop.

One user turn moves through PROMPTING -> MODEL_CALL -> (TOOL_CALL ->
MODEL_CALL)* -> DONE. The loop keeps no iteration policy of its own; the
caller supplies the step budget and the wall-clock bound.
"""

import json
import logging
from enum import Enum
from typing import Callable, Optional

from .errors import RateLimitError, RecursionLimitError
from .keys import CredentialPool
from .llm import GroqChatModel, estimate_tokens
from .memory import Conversation
from .models import ChatMessage, ModelResponse, ToolCall
from .prompts import build_system_prompt
from .tools import JobTools

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    PROMPTING = "prompting"
    MODEL_CALL = "model_call"
    TOOL_CALL = "tool_call"
    DONE = "done"


def trim_messages(messages: list[ChatMessage], max_messages: int = 15) -> list[ChatMessage]:
    """Keep a leading system turn plus the most recent turns, max_messages in all."""
    if len(messages) <= max_messages:
        return list(messages)

    head = [messages[0]] if messages and messages[0].role == "system" else []
    keep = max_messages - len(head)
    recent = list(messages[-keep:]) if keep > 0 else []

    # A tool result whose requesting assistant turn was cut is rejected by the API
    while recent and recent[0].role == "tool":
        recent.pop(0)

    return head + recent


def call_signature(call: ToolCall) -> str:
    arguments = call.arguments if isinstance(call.arguments, str) else json.dumps(call.arguments, sort_keys=True)
    return f"{call.name}:{arguments}"


class AgentLoop:
    """Interleaves model calls and tool calls until the model answers."""

    def __init__(
        self,
        model: GroqChatModel,
        pool: CredentialPool,
        tools: JobTools,
        *,
        max_retries: int = 3,
        history_trigger: int = 18,
        history_keep: int = 15,
        repeat_call_limit: Optional[int] = None,
        system_prompt: Callable[[], str] = build_system_prompt,
    ):
        self.model = model
        self.pool = pool
        self.tools = tools
        self.max_retries = max_retries
        self.history_trigger = history_trigger
        self.history_keep = history_keep
        self.repeat_call_limit = repeat_call_limit
        self.system_prompt = system_prompt

    def render_prompt(self, transcript: list[ChatMessage]) -> list[ChatMessage]:
        """System instructions followed by the working transcript.

        Past history_trigger turns, only history_keep turns are sent, the
        system turn included.
        """
        prompt = [ChatMessage(role="system", content=self.system_prompt())] + list(transcript)
        if len(transcript) > self.history_trigger:
            return trim_messages(prompt, self.history_keep)
        return prompt

    async def call_model(self, prompt: list[ChatMessage]) -> ModelResponse:
        """Invoke the model, rotating keys on rate limits.

        Up to min(pool size, max_retries) attempts; any other failure is
        raised immediately.
        """
        attempts = max(1, min(len(self.pool), self.max_retries))
        tool_definitions = self.tools.definitions()

        for attempt in range(1, attempts + 1):
            api_key, key_id = self.pool.select()
            logger.debug(f"Model call with {key_id} (attempt {attempt}/{attempts})")
            try:
                response = await self.model.invoke(prompt, api_key, tools=tool_definitions, tool_choice="auto")
            except RateLimitError:
                if attempt == attempts:
                    logger.error(f"Rate limited on all {attempts} attempts")
                    raise
                logger.warning(f"{key_id} hit a rate limit (attempt {attempt}/{attempts})")
                continue

            self.pool.record_usage(key_id, response.total_tokens or estimate_tokens(prompt))
            return response

    async def run(self, conversation: Conversation, user_text: str, recursion_limit: int = 25) -> ChatMessage:
        """Resolve one user message against the conversation.

        Every model and tool turn is appended to the conversation as it is
        produced. Raises RecursionLimitError when more than recursion_limit
        model/tool steps would be needed.
        """
        conversation.append(ChatMessage(role="user", content=user_text))

        state = LoopState.PROMPTING
        steps = 0
        prompt: list[ChatMessage] = []
        pending: list[ToolCall] = []
        final = ChatMessage(role="assistant")
        last_signature = None
        repeats = 0

        while state is not LoopState.DONE:
            if state is LoopState.PROMPTING:
                prompt = self.render_prompt(conversation.messages)
                state = LoopState.MODEL_CALL

            elif state is LoopState.MODEL_CALL:
                if steps >= recursion_limit:
                    raise RecursionLimitError(recursion_limit)
                steps += 1

                response = await self.call_model(prompt)
                reply = response.to_message()
                conversation.append(reply)

                if reply.tool_calls:
                    logger.info(f"Model requested {[c.name for c in reply.tool_calls]}")
                    pending = reply.tool_calls
                    state = LoopState.TOOL_CALL
                else:
                    final = reply
                    state = LoopState.DONE

            elif state is LoopState.TOOL_CALL:
                if steps >= recursion_limit:
                    raise RecursionLimitError(recursion_limit)
                steps += 1

                for call in pending:
                    signature = call_signature(call)
                    repeats = repeats + 1 if signature == last_signature else 1
                    last_signature = signature

                    if self.repeat_call_limit is not None and repeats > self.repeat_call_limit:
                        logger.warning(f"Skipping repeated call to {call.name}")
                        result = (
                            f"{call.name} was already called with these arguments. "
                            "Answer the user from the earlier result."
                        )
                    else:
                        result = await self.tools.execute(call)

                    conversation.append(
                        ChatMessage(role="tool", content=result, tool_call_id=call.id, name=call.name)
                    )
                state = LoopState.PROMPTING

        return final
