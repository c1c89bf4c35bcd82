"""planner.py - Ask a language model for the next action.

One interface over two request/response dialects:
- OpenAI-compatible chat completions (OpenAI, Gemini, DeepSeek): system +
  user messages in, `choices[0].message.content` out.
- Anthropic messages: `system` field + user message in, text content blocks out.

No retries here. Retry and recovery policy belongs to the agent loop, which
records a failed step and moves on.
"""

import sys
from enum import Enum

import anthropic
import openai

from droid_agent import prompts
from droid_agent.actions import ActionProposal, ProposalParseError, parse_proposal
from droid_agent.config import ModelSettings
from droid_agent.ui_tree import UiNode

MAX_TOKENS = 4096


def _log(msg: str) -> None:
    print(f"[planner] {msg}", file=sys.stderr)


class PlannerErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVER_UNAVAILABLE = "server_unavailable"
    PARSE_ERROR = "parse_error"
    EMPTY_RESPONSE = "empty_response"
    OTHER = "other"


class PlannerError(Exception):
    """A planner call that produced no usable action."""

    def __init__(self, kind: PlannerErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code


def classify_status(status_code: int | None) -> PlannerErrorKind:
    """Map an HTTP status code onto the planner error taxonomy."""
    if status_code in (401, 403):
        return PlannerErrorKind.UNAUTHORIZED
    if status_code in (402, 429):
        return PlannerErrorKind.RATE_LIMITED
    if status_code is not None and status_code >= 500:
        return PlannerErrorKind.SERVER_UNAVAILABLE
    return PlannerErrorKind.OTHER


def format_api_error(provider_name: str, status_code: int | None) -> str:
    """Human-readable message for a failed backend call."""
    if status_code == 401:
        friendly = "The API key is invalid. Check the key in your settings."
    elif status_code == 402:
        friendly = f"Insufficient account balance. Top up credits in the {provider_name} dashboard."
    elif status_code == 403:
        friendly = "This API key does not have access. Check the key's permissions."
    elif status_code == 429:
        friendly = f"Rate limit exceeded. Try again shortly or upgrade your {provider_name} plan."
    elif status_code is not None and status_code >= 500:
        friendly = f"{provider_name} is having temporary server problems. Try again shortly."
    elif status_code is None:
        friendly = f"Could not reach {provider_name}."
    else:
        friendly = f"API error ({status_code})"
    return f"[{provider_name}] {friendly}"


def _build_client(settings: ModelSettings):
    """Create the SDK client for the configured provider (SDK retries off)."""
    if settings.provider.is_openai_compatible:
        return openai.OpenAI(
            api_key=settings.api_key,
            base_url=settings.provider.base_url,
            timeout=settings.timeout_s,
            max_retries=0,
        )
    return anthropic.Anthropic(
        api_key=settings.api_key,
        timeout=settings.timeout_s,
        max_retries=0,
    )


def _classify_exception(provider_name: str, exc: Exception) -> PlannerError:
    if isinstance(exc, (openai.APIConnectionError, anthropic.APIConnectionError)):
        return PlannerError(
            PlannerErrorKind.SERVER_UNAVAILABLE,
            f"{format_api_error(provider_name, None)} ({type(exc).__name__})",
        )
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return PlannerError(
            classify_status(status_code), format_api_error(provider_name, status_code), status_code
        )
    return PlannerError(PlannerErrorKind.OTHER, f"[{provider_name}] {exc}")


class PlannerClient:
    """Sends goal + history + snapshot to the configured backend."""

    def __init__(self, settings: ModelSettings, client=None):
        settings.validate()
        self.settings = settings
        self._client = client if client is not None else _build_client(settings)

    @property
    def provider_name(self) -> str:
        return self.settings.provider.display_name

    def propose(
        self,
        system_prompt: str,
        goal: str,
        history: list[str],
        snapshot: UiNode,
    ) -> ActionProposal:
        """Return the next action, or raise PlannerError."""
        user_message = prompts.build_user_message(goal, history, snapshot)
        content = self.chat(system_prompt, user_message)
        _log(f"Response: {content[:300]}")
        try:
            proposal = parse_proposal(content)
        except ProposalParseError as exc:
            raise PlannerError(
                PlannerErrorKind.PARSE_ERROR, f"[{self.provider_name}] Could not parse response: {exc}"
            ) from exc
        _log(
            f"Decision: {proposal.action_type.value} text={proposal.target_text!r} "
            f"id={proposal.target_id!r} ({proposal.reasoning})"
        )
        return proposal

    def chat(self, system_prompt: str, user_message: str) -> str:
        """One request/response exchange. Returns the reply text."""
        _log(f"Request: provider={self.provider_name}, model={self.settings.model}")
        try:
            if self.settings.provider.is_openai_compatible:
                content = self._chat_openai(system_prompt, user_message)
            else:
                content = self._chat_anthropic(system_prompt, user_message)
        except PlannerError:
            raise
        except Exception as exc:
            error = _classify_exception(self.provider_name, exc)
            _log(f"Request failed: {error.message} ({exc})")
            raise error from exc

        if content is None or not content.strip():
            raise PlannerError(PlannerErrorKind.EMPTY_RESPONSE, f"[{self.provider_name}] Empty response")
        return content

    def _chat_openai(self, system_prompt: str, user_message: str) -> str | None:
        response = self._client.chat.completions.create(
            model=self.settings.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            response_format={"type": "json_object"},
        )
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        return choices[0].message.content

    def _chat_anthropic(self, system_prompt: str, user_message: str) -> str | None:
        response = self._client.messages.create(
            model=self.settings.model,
            max_tokens=MAX_TOKENS,
            system=system_prompt,
            messages=[{"role": "user", "content": user_message}],
        )
        for block in getattr(response, "content", None) or []:
            if getattr(block, "type", "") == "text":
                return block.text
        return None
