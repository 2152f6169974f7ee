"""Job tracking tools exposed to the model.

Every tool validates its arguments, talks to the record store in a worker
thread, and returns plain text. Failures come back as text too, so the
model always has an outcome to react to.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from .models import JobApplication, SheetRow, ToolCall, today_str
from .sheets import RecordStore

logger = logging.getLogger(__name__)


class SaveJobInput(BaseModel):
    company_name: str = Field(min_length=1, description="The name of the company")
    position: str = Field(min_length=1, description="The job position/title")
    location: str = Field(description="The job location (e.g., US-Remote, London-Hybrid)")
    type: Literal["Full-time", "Intern"] = Field(
        default="Full-time", description="Job type: Full-time or Intern"
    )
    url: Optional[str] = Field(default=None, description="URL of the job posting")
    date: Optional[str] = Field(default=None, description="Date applied in DD/MM/YYYY format")

    model_config = {"str_strip_whitespace": True}


class GetJobsInput(BaseModel):
    model_config = {"extra": "ignore"}


class SearchJobsInput(BaseModel):
    query: str = Field(
        min_length=1, description="Search query (company name, position, location, or type)"
    )

    model_config = {"str_strip_whitespace": True}


class UpdateJobInput(BaseModel):
    job_identifier: str = Field(
        min_length=1,
        description=(
            "Job identifier (company name and/or position) extracted from the user message. "
            "Be as specific as possible to avoid ambiguity."
        ),
    )
    response_status: str = Field(
        min_length=1,
        description=(
            'Response status: "No", "Yes - Rejected", "Yes - Interview", '
            '"Yes - Online Assessment", "Yes - Offer", or another status the user gave'
        ),
    )

    model_config = {"str_strip_whitespace": True}


class DeleteJobInput(BaseModel):
    job_identifier: str = Field(
        min_length=1, description="Job identifier (company name and/or position)"
    )

    model_config = {"str_strip_whitespace": True}


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    failure: str

    def definition(self) -> dict[str, Any]:
        """Function definition in chat-completions `tools` format."""
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema.setdefault("properties", {})
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


TOOL_SPECS = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "save_job",
            "Save new job to spreadsheet. Requires: company, position, location, "
            "type (Full-time/Intern). Optional: url, date.",
            SaveJobInput,
            "Failed to save job",
        ),
        ToolSpec(
            "get_jobs",
            "Get ALL jobs from spreadsheet. Call this ONCE then answer the user from the results. "
            'DO NOT call again. Use for: "what jobs", "show jobs", "last job", "first job".',
            GetJobsInput,
            "Failed to retrieve jobs",
        ),
        ToolSpec(
            "search_jobs",
            "Search jobs by company, position, location, or type.",
            SearchJobsInput,
            "Failed to search jobs",
        ),
        ToolSpec(
            "update_job_response",
            "Update response status for ONE job. Auto-use when user mentions an outcome "
            "(rejected/interview/assessment/offer). If multiple matches, ask for clarification.",
            UpdateJobInput,
            "Failed to update job response",
        ),
        ToolSpec(
            "bulk_update_job_response",
            'Update ALL jobs matching an identifier. Use ONLY when user says "all" or "both" '
            "for multiple jobs.",
            UpdateJobInput,
            "Failed to bulk update jobs",
        ),
        ToolSpec(
            "delete_job",
            "Delete a job from tracking. Cannot be undone.",
            DeleteJobInput,
            "Failed to delete job",
        ),
    )
}


def format_job(number: int, job: JobApplication) -> str:
    """Numbered multi-line description of one job."""
    responded = job.response and job.response != "No"
    return (
        f"{number}. {job.title}\n"
        f"   📍 Location: {job.location or 'N/A'}\n"
        f"   💼 Type: {job.job_type or 'N/A'}\n"
        f"   📅 Date Applied: {job.date_applied or 'N/A'}\n"
        f"   {'✅' if responded else '⏳'} Response: {job.response or 'No'}"
    )


def match_identifier(rows: list[SheetRow], identifier: str) -> list[SheetRow]:
    """Rows whose "company position" contains the identifier, case-insensitive."""
    needle = identifier.lower().strip()
    return [r for r in rows if needle in f"{r.job.company} {r.job.position}".lower()]


def clean_identifier(identifier: str) -> str:
    """Strip *bold* markers and " at " so "*SWE* at *Acme*" matches."""
    cleaned = identifier.replace("*", "")
    cleaned = re.sub(r"\s+at\s+", " ", cleaned, count=1, flags=re.IGNORECASE)
    return cleaned.lower().strip()


def describe_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class JobTools:
    """The six job-tracking tools bound to one record store."""

    def __init__(self, store: RecordStore):
        self.store = store
        self._handlers: dict[str, Callable[[Any], Awaitable[str]]] = {
            "save_job": self.save_job,
            "get_jobs": self.get_jobs,
            "search_jobs": self.search_jobs,
            "update_job_response": self.update_job_response,
            "bulk_update_job_response": self.bulk_update_job_response,
            "delete_job": self.delete_job,
        }

    def definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in TOOL_SPECS.values()]

    async def execute(self, call: ToolCall) -> str:
        """Validate and run one tool call, always returning text."""
        spec = TOOL_SPECS.get(call.name)
        if spec is None:
            logger.warning(f"Model requested unknown tool: {call.name}")
            return f"Unknown tool: {call.name}. Available tools: {', '.join(TOOL_SPECS)}."

        if isinstance(call.arguments, str):
            return f"Invalid input for {call.name}: arguments must be a JSON object."

        try:
            args = spec.input_model.model_validate(call.arguments)
        except ValidationError as e:
            logger.info(f"Rejected {call.name} call: {describe_validation_error(e)}")
            return f"Invalid input for {call.name}: {describe_validation_error(e)}"

        try:
            result = await self._handlers[call.name](args)
        except Exception as e:
            logger.exception(f"Tool {call.name} failed")
            return f"{spec.failure}: {e}"

        logger.info(f"Tool {call.name} completed")
        return result

    async def _read_all(self) -> list[SheetRow]:
        return await asyncio.to_thread(self.store.read_all)

    async def save_job(self, args: SaveJobInput) -> str:
        job = JobApplication(
            company=args.company_name,
            position=args.position,
            date_applied=args.date or today_str(),
            job_type=args.type,
            location=args.location,
            url=args.url or None,
        )
        await asyncio.to_thread(self.store.append, job)
        return f"✅ Job saved successfully: {job.title}"

    async def get_jobs(self, args: GetJobsInput) -> str:
        rows = await self._read_all()
        if not rows:
            return "The spreadsheet is empty - no jobs have been saved yet."

        entries = "\n\n".join(format_job(i + 1, r.job) for i, r in enumerate(rows))
        return f"Here are your saved jobs ({len(rows)} total):\n\n{entries}"

    async def search_jobs(self, args: SearchJobsInput) -> str:
        rows = await self._read_all()
        needle = args.query.lower()
        matches = [
            r for r in rows
            if needle in f"{r.job.company} {r.job.position} {r.job.location} {r.job.job_type}".lower()
        ]

        if not matches:
            return (
                f'No jobs found matching "{args.query}". Try searching for a company name, '
                "position, location, or job type."
            )

        entries = "\n\n".join(format_job(i + 1, r.job) for i, r in enumerate(matches))
        return f'Found {len(matches)} job(s) matching "{args.query}":\n\n{entries}'

    async def update_job_response(self, args: UpdateJobInput) -> str:
        matches = match_identifier(await self._read_all(), args.job_identifier)

        if not matches:
            return f'No job found matching "{args.job_identifier}".'

        if len(matches) > 1:
            candidates = "\n\n".join(
                f"{i + 1}. {m.job.title}\n"
                f"   Location: {m.job.location or 'N/A'}\n"
                f"   Type: {m.job.job_type or 'N/A'}\n"
                f"   Date Applied: {m.job.date_applied or 'N/A'}"
                for i, m in enumerate(matches)
            )
            return (
                f'I found {len(matches)} jobs matching "{args.job_identifier}". Which one do you mean?\n\n'
                f"{candidates}\n\n"
                'Please specify the position or provide more details (e.g., "the Software Engineer III '
                'position" or "the one in US-Remote").\n\n'
                f'*OR* if you want to update ALL of them, say "all of them" or "all {len(matches)}".'
            )

        match = matches[0]
        await asyncio.to_thread(self.store.update_cell, match.row, "response", args.response_status)
        return f"Updated response status for {match.job.title} to: {args.response_status}"

    async def bulk_update_job_response(self, args: UpdateJobInput) -> str:
        matches = match_identifier(await self._read_all(), args.job_identifier)

        if not matches:
            return f'No job found matching "{args.job_identifier}".'

        updates = [(m.row, "response", args.response_status) for m in matches]
        await asyncio.to_thread(self.store.batch_update_cells, updates)

        updated = "\n".join(f"{i + 1}. {m.job.title}" for i, m in enumerate(matches))
        return f"Updated {len(matches)} job(s) to: *{args.response_status}*\n\n{updated}"

    async def delete_job(self, args: DeleteJobInput) -> str:
        needle = clean_identifier(args.job_identifier)
        not_found = (
            f'No job found matching "{args.job_identifier}". Try using just the company name '
            '(e.g., "Okta") or position.'
        )
        if not needle:
            return not_found

        match = None
        for r in await self._read_all():
            company, position = r.job.company.lower(), r.job.position.lower()
            if needle in f"{company} {position}" or needle in f"{position} {company}":
                match = r
                break

        if match is None:
            return not_found

        await asyncio.to_thread(self.store.delete_row, match.row)
        return f"✅ Deleted job: {match.job.title}"
