"""Tests for turn coordination: timeouts, apologies, failed-turn cleanup and serialization."""

import asyncio

import pytest

from applymate.agent import AgentLoop
from applymate.coordinator import (
    AUTH_REPLY,
    GENERIC_REPLY,
    RATE_LIMIT_REPLY,
    RECURSION_REPLY,
    TIMEOUT_REPLY,
    TOOL_USE_REPLY,
    TurnCoordinator,
)
from applymate.errors import AuthenticationError, RateLimitError, ToolUseFailedError, UpstreamError
from applymate.keys import CredentialPool
from applymate.memory import ConversationMemory
from applymate.models import ChatMessage
from applymate.tools import JobTools
from tests.helpers import InMemoryRecordStore, ScriptedModel, answer, job, tool_request


def make_coordinator(responses=(), delay=0.0, timeout=30.0, recursion_limit=25):
    model = ScriptedModel(responses, delay=delay)
    store = InMemoryRecordStore([job("Acme", "SWE")])
    agent = AgentLoop(model, CredentialPool(["k1"]), JobTools(store), system_prompt=lambda: "SYSTEM")
    memory = ConversationMemory()
    coordinator = TurnCoordinator(agent, memory, timeout=timeout, recursion_limit=recursion_limit)
    return coordinator, model, memory, store


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", None])
async def test_rejects_empty_message(text):
    coordinator, model, memory, _ = make_coordinator()
    with pytest.raises(ValueError, match="Invalid message text"):
        await coordinator.resolve(text, "u1")
    assert model.calls == []
    assert "u1" not in memory


@pytest.mark.asyncio
async def test_rejects_missing_user():
    coordinator, model, _, _ = make_coordinator()
    with pytest.raises(ValueError, match="User ID is required"):
        await coordinator.resolve("hi", "")
    assert model.calls == []


@pytest.mark.asyncio
async def test_returns_final_answer_and_remembers_turn():
    coordinator, _, memory, _ = make_coordinator([tool_request("get_jobs"), answer("You have 1 job.")])

    reply = await coordinator.resolve("what jobs?", "u1")

    assert reply == "You have 1 job."
    assert [m.role for m in memory.get("u1").messages] == ["user", "assistant", "tool", "assistant"]


@pytest.mark.asyncio
async def test_timeout_apologizes_and_keeps_user_turn():
    coordinator, _, memory, _ = make_coordinator([answer("too late")], delay=0.5, timeout=0.05)

    reply = await coordinator.resolve("hi", "u1")

    assert reply == TIMEOUT_REPLY
    assert [m.content for m in memory.get("u1").messages] == ["hi"]


@pytest.mark.asyncio
async def test_recursion_limit_apology():
    coordinator, _, _, _ = make_coordinator(
        [tool_request("get_jobs", call_id=f"c{i}") for i in range(10)], recursion_limit=3
    )
    assert await coordinator.resolve("loop", "u1") == RECURSION_REPLY


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (RateLimitError("429"), RATE_LIMIT_REPLY),
        (AuthenticationError("401"), AUTH_REPLY),
        (ToolUseFailedError("tool_use_failed"), TOOL_USE_REPLY),
        (UpstreamError("500"), GENERIC_REPLY),
        (KeyError("boom"), GENERIC_REPLY),
    ],
)
async def test_failures_map_to_apologies(error, expected):
    coordinator, _, _, _ = make_coordinator([error])
    reply = await coordinator.resolve("hi", "u1")
    assert reply == expected
    assert "429" not in reply and "boom" not in reply


@pytest.mark.asyncio
async def test_empty_answer_is_a_failure():
    coordinator, _, memory, _ = make_coordinator([answer("   ")])
    assert await coordinator.resolve("hi", "u1") == GENERIC_REPLY
    assert [m.content for m in memory.get("u1").messages] == ["hi"]


@pytest.mark.asyncio
async def test_failed_turn_keeps_earlier_history():
    coordinator, _, memory, _ = make_coordinator([answer("first"), UpstreamError("down")])

    assert await coordinator.resolve("one", "u1") == "first"
    assert await coordinator.resolve("two", "u1") == GENERIC_REPLY

    assert [m.content for m in memory.get("u1").messages] == ["one", "first", "two"]


@pytest.mark.asyncio
async def test_step_limit_keeps_completed_tool_exchanges():
    coordinator, _, memory, store = make_coordinator(
        [
            tool_request(
                "save_job",
                {"company_name": "Globex", "position": "SWE", "location": "Remote"},
                call_id="save",
            )
        ]
        + [tool_request("search_jobs", {"query": "Globex"}, call_id=f"s{i}") for i in range(5)],
        recursion_limit=4,
    )

    assert await coordinator.resolve("save Globex SWE", "u1") == RECURSION_REPLY

    assert [j.company for j in store.jobs] == ["Acme", "Globex"]
    messages = memory.get("u1").messages
    assert [m.role for m in messages] == ["user", "assistant", "tool", "assistant", "tool"]
    assert messages[2].tool_call_id == "save"
    assert messages[2].content == "✅ Job saved successfully: *SWE* at *Globex*"


@pytest.mark.asyncio
async def test_timeout_during_tool_batch_drops_only_the_unfinished_exchange(monkeypatch):
    coordinator, _, memory, _ = make_coordinator(
        [tool_request("get_jobs", call_id="first"), answer("late")], timeout=0.1
    )
    first = coordinator.agent.model.responses[0]
    first.tool_calls.append(
        tool_request("search_jobs", {"query": "Acme"}, call_id="second").tool_calls[0]
    )
    execute = coordinator.agent.tools.execute

    async def slow_search(call):
        if call.name == "search_jobs":
            await asyncio.sleep(1)
        return await execute(call)

    monkeypatch.setattr(coordinator.agent.tools, "execute", slow_search)

    assert await coordinator.resolve("list and search", "u1") == TIMEOUT_REPLY
    assert [m.role for m in memory.get("u1").messages] == ["user"]


@pytest.mark.asyncio
async def test_waiting_turn_uses_conversation_stored_after_clear():
    coordinator, _, memory, _ = make_coordinator([answer("fresh start")])
    memory.get("u1").append(ChatMessage(role="user", content="old"))

    async with memory.lock("u1"):
        turn = asyncio.create_task(coordinator.resolve("hi", "u1"))
        await asyncio.sleep(0)
        assert coordinator.clear_memory("u1") is True

    assert await turn == "fresh start"
    assert [m.content for m in memory.get("u1").messages] == ["hi", "fresh start"]


@pytest.mark.asyncio
async def test_same_user_turns_run_one_at_a_time():
    coordinator, model, memory, _ = make_coordinator([answer("a"), answer("b")], delay=0.05)

    replies = await asyncio.gather(
        coordinator.resolve("first", "u1"),
        coordinator.resolve("second", "u1"),
    )

    assert replies == ["a", "b"]
    assert model.max_active == 1
    assert [m.content for m in memory.get("u1").messages] == ["first", "a", "second", "b"]


@pytest.mark.asyncio
async def test_different_users_run_concurrently():
    coordinator, model, _, _ = make_coordinator([answer("a"), answer("b")], delay=0.05)

    await asyncio.gather(
        coordinator.resolve("hi", "u1"),
        coordinator.resolve("hi", "u2"),
    )

    assert model.max_active == 2


@pytest.mark.asyncio
async def test_clear_memory():
    coordinator, _, memory, _ = make_coordinator([answer("hello")])
    await coordinator.resolve("hi", "u1")

    assert coordinator.clear_memory("u1") is True
    assert "u1" not in memory
    assert coordinator.clear_memory("u1") is False
