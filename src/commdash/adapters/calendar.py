"""Calendar adapter backed by an external fetch command."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from commdash.adapters.base import CommandSourceAdapter, Fields, first_line, join_lines
from commdash.models import Item, make_source_key


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start_time: str
    end_time: str
    description: Optional[str] = None
    location: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CalendarEvent":
        f = Fields(payload, source="calendar", what="event")
        return cls(
            id=f.identifier(),
            title=f.string("title"),
            start_time=f.string("startTime", "start_time"),
            end_time=f.string("endTime", "end_time"),
            description=f.optional_string("description"),
            location=f.optional_string("location"),
        )


class CalendarAdapter(CommandSourceAdapter[CalendarEvent]):
    """Runs the calendar fetch script and reads its ``events`` list."""

    name = "calendar"
    default_command = "python3 scripts/fetch_calendar.py"
    envelope_key = "events"

    def parse(self, payload: Any) -> CalendarEvent:
        return CalendarEvent.from_payload(payload)

    def normalize(self, raw: CalendarEvent) -> Item:
        title = first_line(raw.title) or "(untitled event)"
        content = join_lines(
            raw.description,
            f"Location: {raw.location}" if raw.location else None,
            f"{raw.start_time} – {raw.end_time}",
        )
        return Item(make_source_key(self.name, raw.id), title, content)
