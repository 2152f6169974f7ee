"""Tests for record and transcript models."""

from datetime import date

import pytest
from pydantic import ValidationError

from applymate.models import SHEET_HEADERS, ChatMessage, JobApplication, ModelResponse, ToolCall


def test_job_requires_company_and_position():
    with pytest.raises(ValidationError):
        JobApplication(company="", position="SWE")
    with pytest.raises(ValidationError):
        JobApplication(company="Acme", position="   ")


def test_job_defaults():
    job = JobApplication(company="Acme", position="SWE")
    assert job.job_type == "Full-time"
    assert job.response == ""
    assert job.date_applied == date.today().strftime("%d/%m/%Y")


def test_to_row_follows_sheet_column_order():
    job = JobApplication(
        company="Acme",
        position="SWE",
        date_applied="02/03/2026",
        job_type="Intern",
        location="Remote",
        response="No",
        url="https://acme.example/jobs/1",
    )
    row = dict(zip(SHEET_HEADERS, job.to_row()))
    assert row == {
        "Company Name": "Acme",
        "Date": "02/03/2026",
        "Position": "SWE",
        "Type": "Intern",
        "Place": "Remote",
        "Responded?": "No",
        "URL": "https://acme.example/jobs/1",
    }


def test_to_row_follows_a_custom_header_row():
    job = JobApplication(company="Acme", position="SWE", date_applied="02/03/2026", response="No")
    assert job.to_row(["Position", "Notes", "Responded?", "Company Name"]) == ["SWE", "", "No", "Acme"]


def test_from_row_tolerates_short_rows_and_reordered_headers():
    headers = ["Position", "Company Name", "Date"]
    job = JobApplication.from_row(headers, ["SRE", "Globex"])
    assert job.position == "SRE"
    assert job.company == "Globex"
    assert job.date_applied == ""
    assert job.url is None


def test_assistant_message_payload_serializes_tool_calls():
    message = ChatMessage(
        role="assistant",
        tool_calls=[ToolCall(id="call_9", name="search_jobs", arguments={"query": "Acme"})],
    )
    payload = message.to_payload()
    assert payload["tool_calls"][0]["function"] == {"name": "search_jobs", "arguments": '{"query": "Acme"}'}
    assert "tool_call_id" not in payload


def test_tool_message_payload_carries_call_id():
    message = ChatMessage(role="tool", content="ok", tool_call_id="call_9", name="get_jobs")
    assert message.to_payload() == {"role": "tool", "content": "ok", "tool_call_id": "call_9", "name": "get_jobs"}


def test_model_response_to_message():
    response = ModelResponse(content="hi", total_tokens=3)
    message = response.to_message()
    assert message.role == "assistant"
    assert message.content == "hi"
    assert message.tool_calls == []
