"""config.py - Run settings and planner backend selection.

Values come from the environment (after loading `.env` at the project root
and `~/.env`); CLI flags and MCP tool arguments override them. Settings are
read once when a run starts.
"""

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")
load_dotenv(Path.home() / ".env")

MIN_MAX_STEPS, MAX_MAX_STEPS, DEFAULT_MAX_STEPS = 5, 30, 15
MIN_STEP_DELAY_MS, MAX_STEP_DELAY_MS, DEFAULT_STEP_DELAY_MS = 500, 3000, 1500
DEFAULT_BROWSER = "Default browser"
DEFAULT_LANGUAGE = "English"
DEFAULT_LLM_TIMEOUT_S = 60.0

BROWSER_OPTIONS = ("Chrome", "Samsung Internet", "Firefox", DEFAULT_BROWSER)
LANGUAGE_OPTIONS = ("English", "Korean")


class ConfigError(Exception):
    """Configuration that must be fixed before a run can start."""


class Provider(Enum):
    # (display name, base URL, API key env var, models; first is the default)
    OPENAI = (
        "OpenAI",
        "https://api.openai.com/v1",
        "OPENAI_API_KEY",
        ("gpt-4o-mini", "gpt-4o", "o3-mini"),
    )
    GEMINI = (
        "Google Gemini",
        "https://generativelanguage.googleapis.com/v1beta/openai/",
        "GEMINI_API_KEY",
        ("gemini-2.0-flash", "gemini-2.0-flash-lite", "gemini-1.5-flash", "gemini-1.5-pro"),
    )
    CLAUDE = (
        "Anthropic Claude",
        "https://api.anthropic.com",
        "ANTHROPIC_API_KEY",
        ("claude-sonnet-4-20250514", "claude-3-5-sonnet-20241022", "claude-3-5-haiku-20241022"),
    )
    DEEPSEEK = (
        "DeepSeek",
        "https://api.deepseek.com/v1",
        "DEEPSEEK_API_KEY",
        ("deepseek-chat", "deepseek-reasoner"),
    )

    def __init__(self, display_name: str, base_url: str, key_env: str, models: tuple[str, ...]):
        self.display_name = display_name
        self.base_url = base_url
        self.key_env = key_env
        self.models = models

    @property
    def default_model(self) -> str:
        return self.models[0]

    @property
    def is_openai_compatible(self) -> bool:
        return self is not Provider.CLAUDE

    @classmethod
    def parse(cls, name: str) -> "Provider":
        key = (name or "").strip().upper()
        aliases = {"ANTHROPIC": "CLAUDE", "GOOGLE": "GEMINI"}
        key = aliases.get(key, key)
        try:
            return cls[key]
        except KeyError:
            valid = ", ".join(p.name.lower() for p in cls)
            raise ConfigError(f"unknown provider '{name}' (expected one of: {valid})") from None


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(int(value), high))


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None


@dataclass(frozen=True)
class AgentSettings:
    """Loop settings. Out-of-range values are clamped, not rejected."""

    max_steps: int = DEFAULT_MAX_STEPS
    step_delay_ms: int = DEFAULT_STEP_DELAY_MS
    default_browser: str = DEFAULT_BROWSER
    language: str = DEFAULT_LANGUAGE

    def __post_init__(self):
        object.__setattr__(self, "max_steps", _clamp(self.max_steps, MIN_MAX_STEPS, MAX_MAX_STEPS))
        object.__setattr__(
            self, "step_delay_ms", _clamp(self.step_delay_ms, MIN_STEP_DELAY_MS, MAX_STEP_DELAY_MS)
        )

    @property
    def step_delay_s(self) -> float:
        return self.step_delay_ms / 1000.0

    @staticmethod
    def from_env() -> "AgentSettings":
        return AgentSettings(
            max_steps=_env_int("AGENT_MAX_STEPS", DEFAULT_MAX_STEPS),
            step_delay_ms=_env_int("AGENT_STEP_DELAY_MS", DEFAULT_STEP_DELAY_MS),
            default_browser=os.getenv("AGENT_DEFAULT_BROWSER", "").strip() or DEFAULT_BROWSER,
            language=os.getenv("AGENT_LANGUAGE", "").strip() or DEFAULT_LANGUAGE,
        )

    def with_overrides(self, **overrides) -> "AgentSettings":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class ModelSettings:
    """Active planner backend: provider, model and credential."""

    provider: Provider = Provider.OPENAI
    model: str = ""
    api_key: str = ""
    timeout_s: float = DEFAULT_LLM_TIMEOUT_S

    def __post_init__(self):
        if not self.model:
            object.__setattr__(self, "model", self.provider.default_model)

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks.
        masked = "set" if self.api_key else "missing"
        return (
            f"ModelSettings(provider={self.provider.name}, model={self.model!r}, "
            f"api_key=<{masked}>, timeout_s={self.timeout_s})"
        )

    @staticmethod
    def from_env(provider: str | None = None, model: str | None = None) -> "ModelSettings":
        resolved = Provider.parse(provider or os.getenv("AGENT_PROVIDER", "") or "openai")
        timeout_raw = os.getenv("AGENT_LLM_TIMEOUT", "").strip()
        try:
            timeout_s = float(timeout_raw) if timeout_raw else DEFAULT_LLM_TIMEOUT_S
        except ValueError:
            raise ConfigError(f"AGENT_LLM_TIMEOUT must be a number, got '{timeout_raw}'") from None
        return ModelSettings(
            provider=resolved,
            model=(model or os.getenv("AGENT_MODEL", "")).strip(),
            api_key=os.getenv(resolved.key_env, "").strip(),
            timeout_s=timeout_s,
        )

    def validate(self) -> None:
        """Raise ConfigError if a run cannot start with these settings."""
        if not self.api_key:
            raise ConfigError(
                f"No API key for {self.provider.display_name}. Set {self.provider.key_env}."
            )
        if not self.model.strip():
            raise ConfigError(f"No model configured for {self.provider.display_name}")
        if self.timeout_s <= 0:
            raise ConfigError("LLM timeout must be positive")
