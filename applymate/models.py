"""Data models for job application tracking."""

import json
from datetime import date
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

SHEET_HEADERS = [
    "Company Name",
    "Date",
    "Position",
    "Type",
    "Place",
    "Responded?",
    "URL",
]

# Model field -> sheet column header
FIELD_HEADERS = {
    "company": "Company Name",
    "date_applied": "Date",
    "position": "Position",
    "job_type": "Type",
    "location": "Place",
    "response": "Responded?",
    "url": "URL",
}

RESPONSE_STATUSES = (
    "No",
    "Yes - Rejected",
    "Yes - Interview",
    "Yes - Online Assessment",
    "Yes - Offer",
)


class EmploymentType(str, Enum):
    FULL_TIME = "Full-time"
    INTERN = "Intern"


def today_str() -> str:
    """Today's date in day/month/year form, as written to the sheet."""
    return date.today().strftime("%d/%m/%Y")


class JobApplication(BaseModel):
    """Represents one tracked job application."""

    company: str = Field(min_length=1)
    position: str = Field(min_length=1)
    date_applied: str = Field(default_factory=today_str)
    job_type: str = EmploymentType.FULL_TIME.value
    location: str = ""
    response: str = ""
    url: Optional[str] = None

    model_config = {"str_strip_whitespace": True}

    def to_row(self, headers: list[str] = SHEET_HEADERS) -> list[str]:
        """Convert to spreadsheet row format, ordered as the given header row."""
        cells = {header: getattr(self, name) or "" for name, header in FIELD_HEADERS.items()}
        return [cells.get(header, "") for header in headers]

    @classmethod
    def from_row(cls, headers: list[str], values: list[str]) -> "JobApplication":
        """Build a record from a sheet row keyed by the header row."""
        cells = {header: (values[i] if i < len(values) else "") for i, header in enumerate(headers)}
        data = {name: cells.get(header, "") for name, header in FIELD_HEADERS.items()}
        data["url"] = data["url"] or None
        # Rows typed by hand may lack a company or position
        data["company"] = data["company"] or "N/A"
        data["position"] = data["position"] or "N/A"
        return cls(**data)

    @property
    def title(self) -> str:
        return f"*{self.position}* at *{self.company}*"


class SheetRow(BaseModel):
    """A record together with its 1-based row number in the sheet.

    Row numbers shift whenever a row above is deleted; never hold on to one
    across store operations.
    """

    row: int
    job: JobApplication


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: Union[dict[str, Any], str] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        arguments = self.arguments if isinstance(self.arguments, str) else json.dumps(self.arguments)
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


class ChatMessage(BaseModel):
    """One transcript turn."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the chat-completions message format."""
        payload: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.role == "tool":
            payload["tool_call_id"] = self.tool_call_id
            if self.name:
                payload["name"] = self.name
        return payload


class ModelResponse(BaseModel):
    """Parsed output of one model call."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    total_tokens: Optional[int] = None

    def to_message(self) -> ChatMessage:
        return ChatMessage(role="assistant", content=self.content, tool_calls=self.tool_calls)
