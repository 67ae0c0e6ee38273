"""
Natural-language task extraction.

TaskExtractor asks the text-generation endpoint to turn a free-text request
into a TaskDraft. Every failure (transport, unparseable reply) is absorbed
and the deterministic heuristics below produce the draft instead, so
extract() always returns a valid draft.
"""
import json
import logging
import re
from datetime import date, timedelta
from typing import Callable, Optional

import anthropic

from config import ExtractorConfig
from models import Priority, Status, TaskDraft
from prompts import SYSTEM_PROMPT, build_task_prompt, end_of_month, end_of_week

logger = logging.getLogger(__name__)

# Cue tables, matched case-insensitively on word boundaries
URGENCY_MARKERS = ("urgent", "critical", "high priority", "important")
DEFERRAL_MARKERS = ("whenever", "sometime", "low priority", "not urgent")
PROGRESS_MARKERS = (
    "in progress",
    "i'm working on",
    "currently working",
    "started working",
    "already started",
    "actively working",
)
COMPLETION_VERBS = (
    "done",
    "completed",
    "finished",
    "already done",
    "already completed",
    "delivered",
    "submitted",
)
# Completion-time cue -> day offset used as the deadline of a finished task
COMPLETION_TIME_MARKERS = (
    ("yesterday", -1),
    ("last week", -7),
    ("last month", -30),
    ("earlier", 0),
    ("already", 0),
)
FUTURE_MARKERS = (
    "will",
    "should",
    "need to",
    "needs to",
    "going to",
    "plan to",
    "due",
    "next",
    "tomorrow",
    "upcoming",
    "later",
    "by the end",
)
# Checked in order; first match wins
RELATIVE_DEADLINES = (
    ("next week", 7),
    ("next month", 30),
    ("end of month", 30),
    ("tomorrow", 1),
    ("two weeks", 14),
)
CALENDAR_DEADLINES = (
    ("end of this month", end_of_month),
    ("end of the month", end_of_month),
    ("later this week", end_of_week),
    ("end of the week", end_of_week),
    ("this week", end_of_week),
    ("today", lambda day: day),
)
PRIORITY_DEADLINE_DAYS = {
    Priority.HIGH: 2,
    Priority.MEDIUM: 5,
    Priority.LOW: 10,
}
ACTION_VERBS = frozenset({
    "create", "update", "fix", "schedule", "implement", "prepare", "develop",
    "design", "build", "setup", "configure", "organize", "write", "start",
})

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
MONTH_DAY_RE = re.compile(
    r"\b(jan|january|feb|february|mar|march|apr|april|may|jun|june|jul|july|aug|august"
    r"|sep|sept|september|oct|october|nov|november|dec|december)"
    r"\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s*(\d{4}))?\b"
)

DRAFT_FIELDS = ("title", "description", "deadline", "priority", "status")
VERBATIM_TITLE_LENGTH = 30
MAX_TITLE_LENGTH = 50
SHORT_DESCRIPTION_LENGTH = 20
DEFAULT_TITLE = "New task"
DESCRIPTION_BOILERPLATE = "\n\nThis task requires attention and should be completed by the deadline."


class ExtractionFailure(Exception):
    """The primary path could not produce a usable model reply."""


class TransportFailure(ExtractionFailure):
    pass


class ParseFailure(ExtractionFailure):
    pass


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'")


def _has_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def _has_any(text: str, phrases) -> bool:
    return any(_has_phrase(text, phrase) for phrase in phrases)


def clip_title(title: str) -> str:
    if len(title) > MAX_TITLE_LENGTH:
        return title[:MAX_TITLE_LENGTH - 3] + "..."
    return title


def infer_title(description: str) -> str:
    """Short input verbatim, otherwise its first sentence clipped to 50 chars."""
    text = description.strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) <= VERBATIM_TITLE_LENGTH:
        return text
    first_sentence = re.split(r"[.!?]", text, maxsplit=1)[0].strip()
    return clip_title(first_sentence or text)


def infer_description(description: str) -> str:
    if not description.strip():
        return DESCRIPTION_BOILERPLATE.strip()
    if len(description) < SHORT_DESCRIPTION_LENGTH:
        return description + DESCRIPTION_BOILERPLATE
    return description


def infer_priority(description: str) -> Priority:
    text = _normalize(description)
    # "not urgent" is a deferral marker, not an urgency marker
    if _has_any(re.sub(r"\bnot urgent\b", " ", text), URGENCY_MARKERS):
        return Priority.HIGH
    if _has_any(text, DEFERRAL_MARKERS):
        return Priority.LOW
    return Priority.MEDIUM


def infer_status(description: str) -> Status:
    """
    In Progress needs an explicit progress phrase. Done needs a completion
    verb, a completion-time cue and no future-facing language. Anything else
    is Todo.
    """
    text = _normalize(description)
    if _has_any(text, PROGRESS_MARKERS):
        return Status.IN_PROGRESS
    if (
        _has_any(text, COMPLETION_VERBS)
        and _has_any(text, (phrase for phrase, _ in COMPLETION_TIME_MARKERS))
        and not _has_any(text, FUTURE_MARKERS)
    ):
        return Status.DONE
    return Status.TODO


def find_explicit_date(text: str, today: date) -> Optional[date]:
    """YYYY-MM-DD or "June 15th" style dates; a yearless past date rolls to next year."""
    match = ISO_DATE_RE.search(text)
    if match:
        try:
            return date(*map(int, match.groups()))
        except ValueError:
            pass

    match = MONTH_DAY_RE.search(text)
    if match:
        month = MONTHS[match.group(1)[:3]]
        day = int(match.group(2))
        year = int(match.group(3)) if match.group(3) else today.year
        try:
            candidate = date(year, month, day)
            if match.group(3) is None and candidate < today:
                candidate = date(year + 1, month, day)
            return candidate
        except ValueError:
            return None
    return None


def infer_deadline(description: str, priority: Priority, status: Status, today: date) -> date:
    text = _normalize(description)

    if status is Status.DONE:
        for phrase, days in COMPLETION_TIME_MARKERS:
            if _has_phrase(text, phrase):
                return today + timedelta(days=days)
        return today

    for phrase, days in RELATIVE_DEADLINES:
        if _has_phrase(text, phrase):
            return today + timedelta(days=days)

    explicit = find_explicit_date(text, today)
    if explicit:
        return explicit

    for phrase, resolve in CALENDAR_DEADLINES:
        if _has_phrase(text, phrase):
            return resolve(today)

    return today + timedelta(days=PRIORITY_DEADLINE_DAYS[priority])


def coerce_priority(value) -> Priority:
    if isinstance(value, str):
        for priority in Priority:
            if value.strip().lower() == priority.value.lower():
                return priority
    logger.warning("Coercing out-of-range priority %r to Medium", value)
    return Priority.MEDIUM


def coerce_status(value) -> Status:
    if isinstance(value, str):
        key = re.sub(r"[\s_-]+", "", value.lower())
        for status in Status:
            if key == status.value.lower().replace(" ", ""):
                return status
    logger.warning("Coercing out-of-range status %r to Todo", value)
    return Status.TODO


def parse_deadline(value) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def parse_model_response(text: str) -> dict:
    """
    Parse the model reply into a dict holding only the draft fields it supplied.
    Raises ParseFailure when nothing is salvageable.
    """
    text = text.strip()
    # Strip markdown code block if present
    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"reply is not JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ParseFailure(f"reply is a JSON {type(parsed).__name__}, not an object")

    fields = {key: parsed[key] for key in DRAFT_FIELDS if parsed.get(key) is not None}
    if not fields:
        raise ParseFailure("reply has none of the task fields")
    return fields


def apply_overrides(description: str, status: Status, deadline: Optional[date], today: date) -> tuple[Status, date]:
    """Enforce the status/deadline invariants on a resolved draft."""
    if deadline is None:
        deadline = today

    if status is Status.DONE:
        words = description.strip().lower().split()
        first_word = re.sub(r"[^a-z]", "", words[0]) if words else ""
        if first_word in ACTION_VERBS:
            logger.info("Overriding Done to Todo for task starting with action verb %r", first_word)
            status = Status.TODO
        elif deadline > today:
            logger.info("Overriding Done to Todo for task with future deadline %s", deadline)
            status = Status.TODO

    # Only finished tasks may keep a past deadline
    if status is not Status.DONE and deadline < today:
        deadline = today

    return status, deadline


def resolve_draft(description: str, parsed: Optional[dict], today: date) -> TaskDraft:
    """
    Build a valid TaskDraft from a parsed model reply.

    Keys missing from parsed are backfilled with the heuristics; present but
    out-of-range values are coerced to defaults. parsed=None is the full
    fallback path.
    """
    parsed = parsed or {}

    if "priority" in parsed:
        priority = coerce_priority(parsed["priority"])
    else:
        priority = infer_priority(description)

    if "status" in parsed:
        status = coerce_status(parsed["status"])
    else:
        status = infer_status(description)

    if "deadline" in parsed:
        deadline = parse_deadline(parsed["deadline"])
    else:
        deadline = infer_deadline(description, priority, status, today)

    title = clip_title(str(parsed.get("title", "")).strip()) or infer_title(description)

    task_description = str(parsed.get("description", "")).strip()
    if len(task_description) < SHORT_DESCRIPTION_LENGTH:
        task_description = infer_description(description)

    status, deadline = apply_overrides(description, status, deadline, today)

    return TaskDraft(
        title=title,
        description=task_description,
        deadline=deadline,
        priority=priority,
        status=status,
    )


def fallback_draft(description: str, today: date) -> TaskDraft:
    return resolve_draft(description, None, today)


class TaskExtractor:
    """Turns free text into a TaskDraft, with or without the model."""

    def __init__(self, config: ExtractorConfig, client=None, clock: Callable[[], date] = date.today):
        self.config = config
        self._client = client
        self._clock = clock

    @property
    def client(self):
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def request_completion(self, description: str, today: date) -> str:
        """Single request to the model; raises ExtractionFailure on any failure."""
        if self._client is None and not self.config.is_configured:
            raise TransportFailure("API key not configured")

        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": build_task_prompt(description, today)}],
            )
        except anthropic.APIError as e:
            raise TransportFailure(f"API error: {e}") from e

        text = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise ParseFailure("empty completion")
        return text

    async def extract(self, description: str, today: Optional[date] = None) -> TaskDraft:
        today = today or self._clock()
        try:
            ai_text = await self.request_completion(description, today)
            logger.debug("Model response: %s", ai_text)
            parsed = parse_model_response(ai_text)
        except ExtractionFailure as e:
            logger.warning("Using heuristic task extraction: %s", e)
            return fallback_draft(description, today)

        missing = [key for key in DRAFT_FIELDS if key not in parsed]
        if missing:
            logger.warning("Model reply missing %s, backfilling from heuristics", ", ".join(missing))
        draft = resolve_draft(description, parsed, today)
        logger.info("Extracted task %r (%s, %s)", draft.title, draft.priority.value, draft.status.value)
        return draft
