"""
Field normalization for goals and tasks before they reach storage.
All functions are total: bad input falls back to a default, never raises.
"""

import calendar
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

GOAL_CATEGORIES = ("career", "health", "personal", "financial", "other")
CATEGORY_ALIASES = {
    "fitness": "health",
    "exercise": "health",
    "wellness": "health",
    "work": "career",
    "job": "career",
    "finance": "financial",
    "money": "financial",
}
PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_TASK_DUE_DAYS = 7
DEFAULT_GOAL_TITLE = "Untitled Goal"
DEFAULT_TASK_TITLE = "Untitled Task"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTH_FORMATS = ("%B %d %Y", "%b %d %Y", "%d %B %Y", "%d %b %Y", "%m/%d/%Y", "%Y/%m/%d")
MONTH_NO_YEAR_FORMATS = ("%B %d", "%b %d", "%d %B", "%d %b")
MONTH_YEAR_FORMATS = ("%B %Y", "%b %Y")


def normalize_category(value: Optional[str]) -> str:
    if not value:
        return "other"
    category = value.strip().lower()
    category = CATEGORY_ALIASES.get(category, category)
    return category if category in GOAL_CATEGORIES else "other"


def normalize_priority(value: Optional[str]) -> str:
    if not value:
        return DEFAULT_PRIORITY
    priority = value.strip().lower()
    return priority if priority in PRIORITIES else DEFAULT_PRIORITY


def end_of_year(today: Optional[date] = None) -> date:
    today = today or date.today()
    return date(today.year, 12, 31)


def _end_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year, month = day.year + month_index // 12, month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def parse_date_phrase(value: Optional[str], today: Optional[date] = None) -> Optional[date]:
    """
    Parses the date expressions users and models typically produce.

    Handles ISO dates, "today", "tomorrow", "next week/month", "end of
    (the) year/month", "in N days/weeks/months", weekday names and
    month-name dates with or without a year.

    Returns:
        The parsed date, or None when the phrase is not understood
    """
    if not value:
        return None
    today = today or date.today()
    text = re.sub(r"\s+", " ", value.strip().lower().replace(",", " ")).strip(" .")
    text = re.sub(r"^(by|on|before|due|until) ", "", text)
    text = re.sub(r"(\d+)(st|nd|rd|th)\b", r"\1", text)

    if re.match(r"^\d{4}-\d{2}-\d{2}", text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None

    if text in ("today", "tonight"):
        return today
    if text == "tomorrow":
        return today + timedelta(days=1)
    if text == "next week":
        return today + timedelta(weeks=1)
    if text == "next month":
        return _add_months(today, 1)
    if re.fullmatch(r"(the )?end of (the |this )?year", text) or text in ("this year", "eoy"):
        return end_of_year(today)
    if re.fullmatch(r"(the )?end of (the |this )?month", text):
        return _end_of_month(today.year, today.month)

    relative = re.fullmatch(r"in (\d+|a|an|one|two|three) (day|week|month|year)s?", text)
    if relative:
        words = {"a": 1, "an": 1, "one": 1, "two": 2, "three": 3}
        amount = words.get(relative.group(1)) or int(relative.group(1))
        unit = relative.group(2)
        if unit == "day":
            return today + timedelta(days=amount)
        if unit == "week":
            return today + timedelta(weeks=amount)
        if unit == "month":
            return _add_months(today, amount)
        return _add_months(today, 12 * amount)

    weekday = re.fullmatch(r"(next |this )?(%s)" % "|".join(WEEKDAYS), text)
    if weekday:
        # always the upcoming occurrence, never today
        days_ahead = (WEEKDAYS.index(weekday.group(2)) - today.weekday()) % 7 or 7
        return today + timedelta(days=days_ahead)

    for fmt in MONTH_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    for fmt in MONTH_YEAR_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
            return _end_of_month(parsed.year, parsed.month)
        except ValueError:
            continue

    for fmt in MONTH_NO_YEAR_FORMATS:
        try:
            parsed = datetime.strptime(f"{text} {today.year}", f"{fmt} %Y").date()
        except ValueError:
            continue
        if parsed >= today:
            return parsed
        try:
            return parsed.replace(year=today.year + 1)
        except ValueError:
            # Feb 29 with no leap year ahead
            return _end_of_month(today.year + 1, parsed.month)

    return None


def normalize_deadline(value: Optional[str], today: Optional[date] = None) -> str:
    """Goal deadline as ISO date; missing or unparsable values mean end of year."""
    parsed = parse_date_phrase(value, today)
    return (parsed or end_of_year(today)).isoformat()


def normalize_due_date(value: Optional[str], today: Optional[date] = None) -> str:
    """Task due date as ISO date; defaults to one week from today."""
    parsed = parse_date_phrase(value, today)
    if parsed is None:
        parsed = (today or date.today()) + timedelta(days=DEFAULT_TASK_DUE_DAYS)
    return parsed.isoformat()


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_goal_fields(fields: dict[str, Any], today: Optional[date] = None) -> dict[str, Any]:
    """Complete goal record for insertion."""
    return {
        "title": _clean_text(fields.get("title")) or DEFAULT_GOAL_TITLE,
        "category": normalize_category(fields.get("category")),
        "deadline": normalize_deadline(fields.get("deadline"), today),
        "description": _clean_text(fields.get("description")) or "",
        "priority": normalize_priority(fields.get("priority")),
        "status": fields.get("status") or "not started",
        "progress": int(fields.get("progress") or 0),
    }


def normalize_goal_updates(fields: dict[str, Any], today: Optional[date] = None) -> dict[str, Any]:
    """Only the goal fields present in the input, normalized."""
    updates: dict[str, Any] = {}
    if _clean_text(fields.get("title")):
        updates["title"] = _clean_text(fields["title"])
    if fields.get("category"):
        updates["category"] = normalize_category(fields["category"])
    if fields.get("deadline"):
        updates["deadline"] = normalize_deadline(fields["deadline"], today)
    if fields.get("description") is not None:
        updates["description"] = _clean_text(fields["description"]) or ""
    if fields.get("priority"):
        updates["priority"] = normalize_priority(fields["priority"])
    if fields.get("status"):
        updates["status"] = fields["status"]
    return updates


def normalize_task_fields(fields: dict[str, Any], today: Optional[date] = None) -> dict[str, Any]:
    """Complete task record for insertion."""
    return {
        "title": _clean_text(fields.get("title")) or DEFAULT_TASK_TITLE,
        "due_date": normalize_due_date(fields.get("due_date"), today),
        "description": _clean_text(fields.get("description")) or "",
        "priority": normalize_priority(fields.get("priority")),
        "goal_id": fields.get("goal_id") or None,
        "tags": [tag for tag in (fields.get("tags") or []) if _clean_text(tag)],
        "completed": bool(fields.get("completed", False)),
    }


def normalize_task_updates(fields: dict[str, Any], today: Optional[date] = None) -> dict[str, Any]:
    """Only the task fields present in the input, normalized."""
    updates: dict[str, Any] = {}
    if _clean_text(fields.get("title")):
        updates["title"] = _clean_text(fields["title"])
    if fields.get("due_date"):
        updates["due_date"] = normalize_due_date(fields["due_date"], today)
    if fields.get("description") is not None:
        updates["description"] = _clean_text(fields["description"]) or ""
    if fields.get("priority"):
        updates["priority"] = normalize_priority(fields["priority"])
    if fields.get("goal_id"):
        updates["goal_id"] = fields["goal_id"]
    if fields.get("tags") is not None:
        updates["tags"] = [tag for tag in fields["tags"] if _clean_text(tag)]
    if fields.get("completed") is not None:
        updates["completed"] = bool(fields["completed"])
    return updates


def goal_progress(tasks: list[dict[str, Any]]) -> tuple[int, str]:
    """
    Progress percentage and status derived from a goal's tasks.

    Returns:
        (progress, status) with status "not started", "in progress" or "completed"
    """
    if not tasks:
        return 0, "not started"
    done = sum(1 for task in tasks if task.get("completed"))
    progress = round(done / len(tasks) * 100)
    if progress == 0:
        return progress, "not started"
    if progress == 100:
        return progress, "completed"
    return progress, "in progress"
