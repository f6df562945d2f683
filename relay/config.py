"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DEFAULT_DB_PATH = DATA_DIR / "relay.db"
DEFAULT_LOG_PATH = LOGS_DIR / "relay.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class DispatchSettings:
    """Tuning knobs for fragment splitting and paced delivery."""

    fragment_max_length: int = 140
    fragment_min_length: int = 20
    typing_delay_min: float = 3.0
    typing_delay_max: float = 15.0
    typing_delay_per_char: float = 0.05
    single_delay_min: float = 2.0
    single_delay_max: float = 15.0
    # Replies at or below this length, or with a single sentence, go out whole.
    split_min_length: int = 100

    def __post_init__(self) -> None:
        if self.fragment_max_length <= 0:
            raise ValueError("fragment_max_length must be positive")
        if self.typing_delay_min > self.typing_delay_max:
            raise ValueError("typing_delay_min must not exceed typing_delay_max")
        if self.single_delay_min > self.single_delay_max:
            raise ValueError("single_delay_min must not exceed single_delay_max")

    @classmethod
    def from_env(cls) -> "DispatchSettings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            fragment_max_length=_env_int("FRAGMENT_MAX_LENGTH", cls.fragment_max_length),
            fragment_min_length=_env_int("FRAGMENT_MIN_LENGTH", cls.fragment_min_length),
            typing_delay_min=_env_float("TYPING_DELAY_MIN", cls.typing_delay_min),
            typing_delay_max=_env_float("TYPING_DELAY_MAX", cls.typing_delay_max),
            typing_delay_per_char=_env_float(
                "TYPING_DELAY_PER_CHAR", cls.typing_delay_per_char
            ),
            single_delay_min=_env_float("SINGLE_DELAY_MIN", cls.single_delay_min),
            single_delay_max=_env_float("SINGLE_DELAY_MAX", cls.single_delay_max),
            split_min_length=_env_int("SPLIT_MIN_LENGTH", cls.split_min_length),
        )


def llm_models_from_env(default: tuple[str, ...]) -> list[str]:
    """Read the LLM fallback chain (comma separated, in priority order)."""
    raw = os.getenv("LLM_MODELS", "")
    models = [item.strip() for item in raw.split(",") if item.strip()]
    return models or list(default)
