"""In-memory fakes for the record store, model and chat transport."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Optional, Union

from applymate.models import JobApplication, ModelResponse, SheetRow, ToolCall


class InMemoryRecordStore:
    """RecordStore over a python list; row 1 is the implicit header."""

    def __init__(self, jobs: Iterable[JobApplication] = ()):
        self.jobs: list[JobApplication] = list(jobs)
        self.calls: list[str] = []
        self.fail_with: Optional[Exception] = None

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def append(self, job: JobApplication) -> None:
        self._check("append")
        self.jobs.append(job)

    def read_all(self) -> list[SheetRow]:
        self._check("read_all")
        return [SheetRow(row=i + 2, job=job.model_copy()) for i, job in enumerate(self.jobs)]

    def update_cell(self, row: int, field: str, value: str) -> None:
        self._check("update_cell")
        job = self.jobs[row - 2]
        self.jobs[row - 2] = job.model_copy(update={field: value})

    def batch_update_cells(self, updates: list[tuple[int, str, str]]) -> None:
        self._check("batch_update_cells")
        for row, field, value in updates:
            job = self.jobs[row - 2]
            self.jobs[row - 2] = job.model_copy(update={field: value})

    def delete_row(self, row: int) -> None:
        self._check("delete_row")
        del self.jobs[row - 2]

    @property
    def mutations(self) -> list[str]:
        return [c for c in self.calls if c != "read_all"]


Scripted = Union[ModelResponse, Exception]


class ScriptedModel:
    """Stands in for GroqChatModel, replaying canned responses in order."""

    def __init__(self, responses: Iterable[Scripted] = (), delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.active = 0
        self.max_active = 0

    async def invoke(self, messages, api_key, tools=None, tool_choice="auto", max_tokens=None):
        self.calls.append(
            {"messages": list(messages), "api_key": api_key, "tools": tools, "tool_choice": tool_choice}
        )
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if not self.responses:
                return ModelResponse(content="done")
            item = self.responses.pop(0)
        finally:
            self.active -= 1
        if isinstance(item, Exception):
            raise item
        return item


def answer(text: str, tokens: Optional[int] = 10) -> ModelResponse:
    return ModelResponse(content=text, total_tokens=tokens)


def tool_request(name: str, arguments: Optional[dict] = None, call_id: str = "call_1") -> ModelResponse:
    return ModelResponse(tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments or {})], total_tokens=10)


class FakeTransport:
    def __init__(self, ready: bool = True):
        self._ready = ready
        self.sent: list[tuple[str, Any, str]] = []

    @property
    def ready(self) -> bool:
        return self._ready

    def send_text(self, chat_id: str, text: str) -> dict[str, Any]:
        self.sent.append((chat_id, text, ""))
        return {"message_id": f"msg_{len(self.sent)}", "timestamp": None, "to": chat_id}

    def send_image(self, chat_id: str, image: dict[str, Any], caption: str = "") -> dict[str, Any]:
        self.sent.append((chat_id, image, caption))
        return {"message_id": f"msg_{len(self.sent)}", "timestamp": None, "to": chat_id}


def job(company: str, position: str, **fields: Any) -> JobApplication:
    fields.setdefault("date_applied", "01/10/2026")
    fields.setdefault("location", "Remote")
    return JobApplication(company=company, position=position, **fields)
