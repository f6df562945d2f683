"""Task extraction and bookkeeping for conversations."""

import json
import re
import uuid
from datetime import datetime, timezone
from typing import Callable

from ..llm import ILLMProvider, clean_reply
from ..logging_config import get_logger
from ..models import Task
from ..storage import IStorage
from .reminders import ReminderScheduler, parse_time_expression

logger = get_logger(__name__)

PRIORITIES = ("high", "medium", "low")
CATEGORIES = ("work", "personal", "school", "health", "other")
PRIORITY_MARKS = {"high": "🔴", "medium": "🟡", "low": "🟢"}

EXTRACTION_PROMPT = """\
Extract task information from this message: "{text}"

Return a JSON object with:
- title: short task title
- description: full task description
- due_date: date if mentioned (YYYY-MM-DD format, null if not mentioned)
- reminder_time: time expression if mentioned (e.g. "in 5 minutes", "in 2 hours", \
"tomorrow at 3pm", null if not mentioned)
- priority: "high", "medium", or "low" based on urgency
- category: "work", "personal", "school", "health", or "other"

Examples:
- "remind me to call mom in 5 mins" -> {{"title": "Call mom", "description": "Call mom", \
"due_date": null, "reminder_time": "in 5 mins", "priority": "medium", "category": "personal"}}
- "homework due Friday" -> {{"title": "Homework", "description": "homework due Friday", \
"due_date": "2024-01-15", "reminder_time": null, "priority": "medium", "category": "school"}}"""

TASK_REPLY_PROMPT = """\
{facts}

Write a short, friendly, casual reply to the user about this. Keep it \
conversational, one or two sentences."""

_LIST_HINTS = ("tasks", "need to do", "to do today", "on my list")
_COMPLETION_HINTS = ("done", "completed", "finished")

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def is_task_list_query(text: str) -> bool:
    """Questions like "what are my tasks?" or "what do I need to do?"."""
    lower = text.lower()
    return "what" in lower and any(hint in lower for hint in _LIST_HINTS)


def is_completion_message(text: str) -> bool:
    lower = text.lower()
    return any(hint in lower for hint in _COMPLETION_HINTS)


def basic_task_info(text: str) -> dict:
    """Fallback extraction: the first five words become the title."""
    return {
        "title": " ".join(text.split()[:5]),
        "description": text,
        "due_date": None,
        "reminder_time": None,
        "priority": "medium",
        "category": "other",
    }


def parse_task_json(raw: str) -> dict | None:
    match = _JSON_OBJECT.search(raw)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def format_task_list(tasks: list[Task]) -> str:
    lines = []
    for index, task in enumerate(tasks, start=1):
        line = f"{index}. {task.title}"
        if task.due_at:
            line += f" (due {task.due_at:%Y-%m-%d %H:%M})"
        line += f" {PRIORITY_MARKS.get(task.priority, PRIORITY_MARKS['low'])}"
        lines.append(line)
    return "\n".join(lines)


class TaskManager:
    """Turns free-form requests into stored tasks with optional reminders."""

    def __init__(
        self,
        storage: IStorage,
        llm: ILLMProvider | None = None,
        reminders: ReminderScheduler | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._storage = storage
        self._llm = llm
        self._reminders = reminders
        self._clock = clock

    async def extract(self, text: str) -> dict:
        """Structured task fields for `text`, via the model when one is available."""
        if self._llm is not None:
            try:
                raw = await self._llm.complete(
                    messages=[{"role": "user", "content": EXTRACTION_PROMPT.format(text=text)}],
                    max_tokens=300,
                )
                data = parse_task_json(raw)
                if data and data.get("title"):
                    return data
                logger.warning("Task extraction returned no usable JSON, using fallback")
            except Exception as e:
                logger.warning(f"Task extraction failed, using fallback: {e}")
        return basic_task_info(text)

    def resolve_due(self, data: dict) -> datetime | None:
        now = self._clock()
        reminder_time = data.get("reminder_time")
        if reminder_time:
            due = parse_time_expression(str(reminder_time), now)
            if due:
                return due
        due_date = data.get("due_date")
        if due_date:
            try:
                return datetime.strptime(str(due_date), "%Y-%m-%d").replace(tzinfo=timezone.utc)
            except ValueError:
                logger.warning(f"Ignoring unparseable due date {due_date!r}")
        return None

    async def add_from_text(self, key: str, text: str) -> Task:
        """Extract, save and (if it has a due time) schedule a task."""
        data = await self.extract(text)
        priority = str(data.get("priority") or "medium").lower()
        category = str(data.get("category") or "other").lower()

        task = Task(
            id=str(uuid.uuid4()),
            key=key,
            title=str(data.get("title") or text).strip()[:200],
            description=str(data.get("description") or text),
            due_at=self.resolve_due(data),
            priority=priority if priority in PRIORITIES else "medium",
            category=category if category in CATEGORIES else "other",
            created_at=self._clock(),
        )
        await self._storage.save_task(task)
        logger.info(f"Added task '{task.title}'", extra={"conversation": key})

        if self._reminders is not None:
            self._reminders.schedule(task)
        return task

    async def list_tasks(self, key: str) -> list[Task]:
        return await self._storage.get_tasks(key)

    async def complete_matching(self, key: str, text: str) -> Task | None:
        """Complete the first open task whose title appears in `text`."""
        lower = text.lower()
        for task in await self._storage.get_tasks(key):
            if task.title and task.title.lower() in lower:
                await self._storage.complete_task(task.id)
                if self._reminders is not None:
                    self._reminders.cancel(task.id)
                task.completed = True
                return task
        return None

    async def answer_task_query(self, key: str, text: str) -> str | None:
        """
        Reply to task bookkeeping messages without the regular chat model.

        Lists open tasks when asked for them, and completes a task when the
        message says it is done and names it. Returns None for anything else,
        including completion words that match no open task.
        """
        if is_task_list_query(text):
            tasks = await self.list_tasks(key)
            if not tasks:
                return await self._phrase(
                    "The user asked about their tasks, but they have no tasks on their list.",
                    "Nothing on your list right now!",
                )
            listing = format_task_list(tasks)
            return await self._phrase(
                f"The user asked about their tasks. Here's their current task list:\n\n{listing}",
                listing,
            )

        if is_completion_message(text):
            task = await self.complete_matching(key, text)
            if task is not None:
                return await self._phrase(
                    f'The user just completed a task: "{task.title}".',
                    f"Nice, ticked off: {task.title}",
                )
        return None

    async def _phrase(self, facts: str, default: str) -> str:
        if self._llm is None:
            return default
        try:
            text = await self._llm.complete(
                messages=[{"role": "user", "content": TASK_REPLY_PROMPT.format(facts=facts)}],
                max_tokens=300,
            )
        except Exception as e:
            logger.warning(f"Could not phrase task reply: {e}")
            return default
        return clean_reply(text, max_length=500) if text.strip() else default
