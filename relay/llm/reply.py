"""Reply generation: prompt assembly, model call and output cleanup."""

import re
from dataclasses import dataclass, field
from typing import Protocol

from ..errors import LLMError
from ..logging_config import get_logger
from ..models import MediaAttachment
from .llm_provider import ILLMProvider

logger = get_logger(__name__)

FALLBACK_REPLY = (
    "I'm having trouble thinking of what to say right now. Can you tell me more about that?"
)
EMPTY_REPLY = "I'm not sure what to say to that."

DEFAULT_SYSTEM_PROMPT = """\
You are texting a friend on WhatsApp. Sound like a real person, never like an \
assistant. Keep messages short and casual, one or two sentences, and use \
punctuation only when it feels natural. Don't repeat the other person's \
question back to them. If they ask you to remember a task or set a reminder, \
reply normally and add a final line of the form "[TASKADD] <the task>"."""

MEMORY_CLASSIFIER_PROMPT = """\
Classify the following user message. If the message contains ANY of these, \
reply with [Important Memory] and a short summary:
- Name (first name, last name, nickname) when someone states THEIR OWN name
- Birthday, age, or birth date
- Location (city, country, address)
- Personal preferences (likes, dislikes, hobbies)
- Contact information (phone, email)
- Personal facts (job, school, family)

Otherwise, reply with [Not important].

Message: {message}"""

IMAGE_PROMPT = (
    "They sent you this photo. React to what you see the way a friend would, "
    "in one or two sentences."
)

IMPORTANT_MEMORY_MARKER = "[Important Memory]"

_CODE_FENCE = re.compile(r"```.*?```", re.DOTALL)
_LEADING_TAG = re.compile(r"^\[.*?\]")
_ROLE_PREFIX = re.compile(r"^(user|assistant|bot|ai):", re.IGNORECASE)
_BLANK_LINES = re.compile(r"\n{2,}")
_TASK_MARKER = re.compile(r"\[TASKADD\]\s*(.+)", re.IGNORECASE)


def clean_reply(text: str, max_length: int = 200) -> str:
    """
    Normalize raw model output into something that reads like a text message.

    Long output is cut to `max_length`, then back to the last sentence end
    when that keeps more than half of it.
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    cleaned = _LEADING_TAG.sub("", cleaned).strip()
    cleaned = _ROLE_PREFIX.sub("", cleaned).strip()
    cleaned = _BLANK_LINES.sub(" ", cleaned).strip()

    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].strip()
        last_break = max(cleaned.rfind("."), cleaned.rfind("?"), cleaned.rfind("!"))
        if last_break > max_length // 2:
            cleaned = cleaned[: last_break + 1]

    return cleaned or EMPTY_REPLY


def extract_task_markers(text: str) -> tuple[str, list[str]]:
    """Split `[TASKADD] ...` lines out of a reply. Returns (reply, task requests)."""
    requests = [match.strip() for match in _TASK_MARKER.findall(text) if match.strip()]
    return _TASK_MARKER.sub("", text).strip(), requests


def image_content(image: MediaAttachment, text: str) -> list[dict]:
    """Message content with the image first, then the text prompt."""
    return [
        {
            "type": "image",
            "source": {"type": "base64", "media_type": image.media_type, "data": image.data},
        },
        {"type": "text", "text": text},
    ]


class IHistory(Protocol):
    def format(self, key: str) -> str:
        ...


class IMemoryContext(Protocol):
    async def get_memory_context(self, key: str, query: str, limit: int = 10) -> list:
        ...


@dataclass
class GeneratedReply:
    text: str
    task_requests: list[str] = field(default_factory=list)
    fallback: bool = False


class ReplyGenerator:
    """Builds prompts from history and memories and asks the model for a reply."""

    def __init__(
        self,
        llm: ILLMProvider,
        history: IHistory | None = None,
        memory_store: IMemoryContext | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_length: int = 200,
    ):
        self._llm = llm
        self._history = history
        self._memory = memory_store
        self._system_prompt = system_prompt
        self._max_length = max_length

    async def build_prompt(
        self, key: str, text: str, quoted: str | None = None, placeholder: str = "[media]"
    ) -> str:
        sections = []

        if self._history is not None:
            formatted = self._history.format(key)
            if formatted:
                sections.append(f"--- Recent Conversation ---\n{formatted}")

        if self._memory is not None:
            try:
                memories = await self._memory.get_memory_context(key, text)
            except Exception as e:
                logger.warning(f"Memory lookup failed for {key}: {e}")
                memories = []
            if memories:
                lines = "\n".join(m.text for m in memories)
                sections.append(f"--- Memory Context (Pinned + Relevant) ---\n{lines}")

        body = text or placeholder
        if quoted:
            sections.append(f"In reply to: {quoted}\nUser: {body}")
        else:
            sections.append(f"User: {body}")

        return "\n\n".join(sections)

    async def generate(
        self,
        key: str,
        text: str,
        quoted: str | None = None,
        image: MediaAttachment | None = None,
    ) -> GeneratedReply:
        if image is None:
            content = await self.build_prompt(key, text, quoted)
        else:
            prompt = await self.build_prompt(key, text, quoted, placeholder="[image]")
            content = image_content(image, f"{prompt}\n\n{IMAGE_PROMPT}")
        try:
            raw = await self._llm.complete(
                messages=[{"role": "user", "content": content}],
                system=self._system_prompt,
            )
        except LLMError as e:
            logger.error(f"No model produced a reply: {e}", extra={"conversation": key})
            return GeneratedReply(text=FALLBACK_REPLY, fallback=True)

        # Markers come out before cleanup, which would strip or truncate them.
        reply, task_requests = extract_task_markers(raw)
        cleaned = clean_reply(reply, self._max_length) if reply else ""
        return GeneratedReply(text=cleaned, task_requests=task_requests)

    async def get_reply(self, key: str, text: str, quoted: str | None = None) -> str:
        return (await self.generate(key, text, quoted)).text

    async def classify_memory(self, text: str) -> bool:
        """Ask the model whether `text` carries personal facts worth pinning."""
        try:
            result = await self._llm.complete(
                messages=[
                    {"role": "user", "content": MEMORY_CLASSIFIER_PROMPT.format(message=text)}
                ],
                max_tokens=100,
            )
        except Exception as e:
            logger.warning(f"Memory classification failed: {e}")
            return False
        return result.strip().startswith(IMPORTANT_MEMORY_MARKER)
