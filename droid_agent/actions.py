"""Planner action proposals: the single next step the model asks for."""

import json
import re
from dataclasses import asdict, dataclass
from enum import Enum


class ActionType(str, Enum):
    CLICK = "CLICK"
    TYPE = "TYPE"
    SCROLL = "SCROLL"
    BACK = "BACK"
    HOME = "HOME"
    DONE = "DONE"


class ProposalParseError(ValueError):
    """Planner output could not be decoded into an ActionProposal."""


@dataclass(frozen=True)
class ActionProposal:
    """One planner decision. Lives for a single step."""

    action_type: ActionType
    target_text: str | None = None
    target_id: str | None = None
    input_text: str | None = None
    reasoning: str | None = None

    def is_done(self) -> bool:
        return self.action_type is ActionType.DONE

    def to_history_entry(self, step: int, success: bool) -> str:
        status = "SUCCESS" if success else "FAILED"
        entry = f"Step {step} [{status}]: {self.action_type.value}"
        if self.target_text:
            entry += f" on '{self.target_text}'"
        if self.target_id:
            entry += f" (id '{self.target_id}')"
        if self.input_text:
            entry += f" with text '{self.input_text}'"
        if self.reasoning:
            entry += f" - {self.reasoning}"
        return entry

    def to_dict(self) -> dict:
        data = asdict(self)
        data["action_type"] = self.action_type.value
        return data


_WRAPPED_RE = re.compile(r"\A```(?:json)?\s*(.*?)\s*```\Z", re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def strip_code_fence(text: str) -> str:
    """Remove surrounding ``` / ```json markup from a model reply."""
    cleaned = text.strip()
    m = _WRAPPED_RE.match(cleaned)
    if m:
        return m.group(1).strip()
    # A bare object may quote fenced snippets inside its strings.
    if cleaned.startswith("{"):
        return cleaned
    m = _FENCE_RE.search(cleaned)
    if m:
        return m.group(1).strip()
    # Unterminated fence (reply cut off by max_tokens).
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
    return cleaned.strip()


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ProposalParseError(f"'{key}' must be a string, got {type(value).__name__}")
    value = value.strip()
    return value or None


def parse_proposal(text: str) -> ActionProposal:
    """Decode model output into an ActionProposal, validating every field."""
    if text is None or not text.strip():
        raise ProposalParseError("empty planner output")

    cleaned = strip_code_fence(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ProposalParseError(f"invalid JSON: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise ProposalParseError("planner output must be a JSON object")

    raw_type = data.get("action_type")
    if not isinstance(raw_type, str) or not raw_type.strip():
        raise ProposalParseError("missing 'action_type'")
    try:
        action_type = ActionType(raw_type.strip().upper())
    except ValueError as exc:
        raise ProposalParseError(f"unknown action_type '{raw_type}'") from exc

    proposal = ActionProposal(
        action_type=action_type,
        target_text=_optional_str(data, "target_text"),
        target_id=_optional_str(data, "target_id"),
        input_text=_optional_str(data, "input_text"),
        reasoning=_optional_str(data, "reasoning"),
    )

    if action_type is ActionType.TYPE and not proposal.input_text:
        raise ProposalParseError("TYPE requires 'input_text'")

    return proposal
