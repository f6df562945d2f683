"""Time expression parsing and in-process reminder scheduling."""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Protocol, Sequence

from ..llm import ILLMProvider, clean_reply
from ..logging_config import get_logger
from ..models import DispatchOutcome, DispatchState, Task
from ..storage import IStorage

logger = get_logger(__name__)

_RELATIVE_PATTERNS = [
    (re.compile(r"in\s+(\d+)\s+(?:minutes?|mins?|m)\b"), timedelta(minutes=1)),
    (re.compile(r"in\s+(\d+)\s+(?:hours?|hrs?|h)\b"), timedelta(hours=1)),
    (re.compile(r"in\s+(\d+)\s+(?:days?|d)\b"), timedelta(days=1)),
    (re.compile(r"in\s+(\d+)\s+(?:seconds?|secs?|s)\b"), timedelta(seconds=1)),
    (re.compile(r"in\s+(\d+)\s+(?:weeks?|w)\b"), timedelta(weeks=1)),
    (re.compile(r"in\s+(\d+)\s+(?:months?|mos?)\b"), timedelta(days=30)),
    (re.compile(r"in\s+(\d+)\s+(?:years?|yrs?|y)\b"), timedelta(days=365)),
]

_CLOCK_TIME = re.compile(r"(today|tomorrow)\s+at\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_time_expression(expression: str, now: datetime | None = None) -> datetime | None:
    """
    Resolve a reminder time such as "in 5 mins" or "tomorrow at 3pm".

    Returns the absolute time, or None if the expression is not understood.
    "today at" a time that has already passed means the same time tomorrow.
    """
    now = now or _utcnow()
    lower = expression.lower()

    for pattern, unit in _RELATIVE_PATTERNS:
        match = pattern.search(lower)
        if match:
            return now + int(match.group(1)) * unit

    match = _CLOCK_TIME.search(lower)
    if not match:
        return None

    day, hour, minute, meridiem = match.groups()
    hour = int(hour)
    minute = int(minute) if minute else 0
    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None

    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if day == "tomorrow" or target <= now:
        target += timedelta(days=1)
    return target


class IDispatcher(Protocol):
    async def dispatch(self, key: str, fragments: Sequence[str]) -> DispatchOutcome:
        ...


REMINDER_PROMPT = (
    'The user has a task due: "{title}". Write a short, friendly, casual reminder '
    "message for them. Keep it conversational, one or two sentences."
)


class ReminderScheduler:
    """
    One asyncio task per pending reminder.

    A task is completed only once its reminder has been fully delivered. A
    reminder cut short by the user (or a failed send) is retried after
    `retry_delay`, up to `max_attempts` times.
    """

    def __init__(
        self,
        storage: IStorage,
        dispatcher: IDispatcher,
        llm: ILLMProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        retry_delay: float = 60.0,
        max_attempts: int = 3,
    ):
        self._storage = storage
        self._dispatcher = dispatcher
        self._llm = llm
        self._clock = clock
        self._sleep = sleep
        self._retry_delay = retry_delay
        self._max_attempts = max_attempts
        self._pending: dict[str, asyncio.Task] = {}

    def schedule(self, task: Task) -> bool:
        """Arm a reminder for `task`. Tasks without a future due time are skipped."""
        if task.completed or task.due_at is None:
            return False
        delay = (task.due_at - self._clock()).total_seconds()
        if delay <= 0:
            logger.info(f"Task {task.id} is already due, not scheduling a reminder")
            return False

        self.cancel(task.id)
        reminder = asyncio.create_task(self._run(task, delay), name=f"reminder:{task.id}")
        self._pending[task.id] = reminder
        reminder.add_done_callback(lambda t, task_id=task.id: self._forget(task_id, t))
        logger.info(
            f"Scheduled reminder for '{task.title}' in {delay:.0f}s",
            extra={"conversation": task.key},
        )
        return True

    def cancel(self, task_id: str) -> bool:
        reminder = self._pending.pop(task_id, None)
        if reminder is None:
            return False
        reminder.cancel()
        return True

    async def load_pending(self) -> int:
        """Re-arm reminders for incomplete tasks after a restart."""
        count = 0
        for task in await self._storage.get_tasks():
            if self.schedule(task):
                count += 1
        logger.info(f"Loaded {count} pending reminders")
        return count

    async def stop(self) -> None:
        reminders = list(self._pending.values())
        self._pending.clear()
        for reminder in reminders:
            reminder.cancel()
        if reminders:
            await asyncio.gather(*reminders, return_exceptions=True)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def _forget(self, task_id: str, reminder: asyncio.Task) -> None:
        if self._pending.get(task_id) is reminder:
            del self._pending[task_id]

    async def _run(self, task: Task, delay: float) -> None:
        await self._sleep(delay)
        for attempt in range(1, self._max_attempts + 1):
            try:
                if await self.fire(task):
                    return
            except Exception as e:
                logger.error(
                    f"Reminder for task {task.id} failed: {e}",
                    exc_info=True,
                    extra={"conversation": task.key},
                )
                return
            if attempt < self._max_attempts:
                await self._sleep(self._retry_delay)
        logger.warning(
            f"Giving up on reminder for task {task.id} after {self._max_attempts} attempts",
            extra={"conversation": task.key},
        )

    async def fire(self, task: Task) -> bool:
        """
        Deliver the reminder for `task`, completing the task once it is out.

        Returns False when the dispatch was interrupted or failed; the task
        then stays open.
        """
        text = await self._compose(task)
        outcome = await self._dispatcher.dispatch(task.key, [text])
        if outcome.state != DispatchState.DONE:
            logger.info(
                f"Reminder for {task.title} not delivered ({outcome.state.value})",
                extra={"conversation": task.key},
            )
            return False
        await self._storage.complete_task(task.id)
        logger.info(f"Sent reminder for {task.title}", extra={"conversation": task.key})
        return True

    async def _compose(self, task: Task) -> str:
        default = f"hey, just reminding you: {task.title}"
        if self._llm is None:
            return default
        try:
            text = await self._llm.complete(
                messages=[{"role": "user", "content": REMINDER_PROMPT.format(title=task.title)}],
                max_tokens=200,
            )
        except Exception as e:
            logger.warning(f"Could not compose reminder text: {e}")
            return default
        return clean_reply(text) if text.strip() else default
