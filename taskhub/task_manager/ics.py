"""iCalendar (RFC 5545) export of a task's due date."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from taskhub.task_manager.models import Task
from taskhub.utils import ServiceError, as_utc, utcnow

PRODID = "-//taskhub//Task Calendar//EN"


def _format_dt(value: datetime) -> str:
    return as_utc(value).strftime("%Y%m%dT%H%M%SZ")


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> List[str]:
    """Split a content line into 75-octet chunks, continuation lines start with a space."""
    encoded = line.encode("utf-8")
    if len(encoded) <= 75:
        return [line]
    parts: List[str] = []
    current = ""
    limit = 75
    for char in line:
        if len((current + char).encode("utf-8")) > limit:
            parts.append(current)
            current = char
            limit = 74  # room for the leading space
        else:
            current += char
    parts.append(current)
    return [parts[0]] + [" " + part for part in parts[1:]]


def render_task_event(task: Task, now: Optional[datetime] = None) -> str:
    if task.due_date is None:
        raise ServiceError("Task does not have a due date.")
    due = _format_dt(task.due_date)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "X-WR-CALNAME:Task Calendar",
        "BEGIN:VEVENT",
        f"UID:task-{task.id}@taskhub",
        f"DTSTAMP:{_format_dt(now or utcnow())}",
        f"DTSTART:{due}",
        f"DTEND:{due}",
        f"SUMMARY:{_escape(task.title)}",
        f"DESCRIPTION:{_escape(task.description or '')}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    folded = [chunk for line in lines for chunk in _fold(line)]
    return "\r\n".join(folded) + "\r\n"


def calendar_filename(task: Task) -> str:
    return f"task-{task.id}.ics"
