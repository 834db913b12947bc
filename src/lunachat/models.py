"""Data models for live messages, stream frames and exported conversations."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]
Status = Literal["pending", "complete", "error"]

# pending -> complete | error; complete and error are terminal
_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"pending", "complete", "error"},
    "complete": {"complete"},
    "error": {"error"},
}


class Message(BaseModel):
    id: str
    role: Role
    content: str = ""
    status: Status = "complete"
    timing_seconds: float | None = None

    def apply(self, **patch: Any) -> Message:
        """Return a copy with ``patch`` merged in.

        Raises ValueError on a status change out of a terminal state.
        """
        new_status = patch.get("status", self.status)
        if new_status not in _TRANSITIONS[self.status]:
            raise ValueError(
                f"Message {self.id}: illegal status transition {self.status} -> {new_status}"
            )
        return self.model_validate({**self.model_dump(), **patch})

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class FrameMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str | None = None
    content: str = ""


class Frame(BaseModel):
    """One newline-delimited JSON object from a streamed /api/chat response."""

    model_config = ConfigDict(extra="allow")

    model: str | None = None
    created_at: str | None = None
    message: FrameMessage | None = None
    done: bool = False
    prompt_eval_duration: float | None = None
    eval_duration: float | None = None
    error: str | None = None

    @property
    def content(self) -> str:
        return self.message.content if self.message else ""


class ExportHeader(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    title: str
    date_created: str = Field(alias="dateCreated")
    status: Literal["begin"] = "begin"


class ExportEntry(BaseModel):
    role: Role
    content: str


class ExportFooter(BaseModel):
    status: Literal["end"] = "end"


class ExportedConversation(BaseModel):
    header: ExportHeader
    messages: list[ExportEntry] = []
    footer: ExportFooter = ExportFooter()
    path: Path | None = None

    @property
    def title(self) -> str:
        return self.header.title

    def to_records(self) -> list[dict[str, Any]]:
        """Flat file layout: begin marker, role/content entries, end marker."""
        return [
            self.header.model_dump(by_alias=True),
            *(m.model_dump() for m in self.messages),
            self.footer.model_dump(),
        ]

    @classmethod
    def from_records(
        cls, records: list[dict[str, Any]], path: Path | None = None
    ) -> ExportedConversation:
        """Parse the flat file layout. Raises ValueError if it is malformed."""
        if not isinstance(records, list) or len(records) < 2:
            raise ValueError("Exported conversation must be an array with begin and end markers")

        first, *middle, last = records
        if not isinstance(first, dict) or first.get("status") != "begin":
            raise ValueError("Missing begin marker")
        if not isinstance(last, dict) or last.get("status") != "end":
            raise ValueError("Missing end marker")

        return cls(
            header=ExportHeader.model_validate(first),
            messages=[ExportEntry.model_validate(m) for m in middle],
            footer=ExportFooter.model_validate(last),
            path=path,
        )
