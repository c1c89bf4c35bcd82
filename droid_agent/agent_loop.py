"""agent_loop.py - Observe / plan / act loop for Android UI automation.

Give it a goal in plain English and it snapshots the screen, asks the
planner for one action, resolves and performs it, and loops until the
planner says DONE, the step budget runs out, or the run is cancelled.

Failures never end a run on their own. A failed step bumps the
consecutive-failure counter; at STUCK_HINT_THRESHOLD the planner is told it
is stuck, and at STUCK_FORCE_BACK_THRESHOLD the loop presses BACK itself
without asking the planner.
"""

import sys

from droid_agent import prompts, resolver
from droid_agent.config import AgentSettings
from droid_agent.device import NoActiveWindow
from droid_agent.planner import PlannerError, PlannerErrorKind
from droid_agent.run_state import RunStateModel, RunStatus, StepRecord

STUCK_HINT_THRESHOLD = 3
STUCK_FORCE_BACK_THRESHOLD = 5
INITIAL_DELAY_MS = 500
NO_WINDOW_RETRY_LIMIT = 10

ERROR_ACTION = "ERROR"


def _log(msg: str) -> None:
    print(f"[agent] {msg}", file=sys.stderr)


def _pause(state: RunStateModel, seconds: float) -> bool:
    """Inter-step wait. Returns True if cancellation arrived meanwhile."""
    return state.wait_for_cancel(seconds)


def _force_back(device) -> bool:
    try:
        return bool(device.global_back())
    except Exception as exc:
        _log(f"Forced BACK raised {type(exc).__name__}: {exc}")
        return False


def _ask_planner(planner, system_prompt: str, goal: str, history: list[str], snapshot):
    """Returns (proposal, None) or (None, PlannerError)."""
    try:
        return planner.propose(system_prompt, goal, list(history), snapshot), None
    except PlannerError as exc:
        return None, exc
    except Exception as exc:
        return None, PlannerError(PlannerErrorKind.OTHER, f"{type(exc).__name__}: {exc}")


def run(
    goal: str,
    device,
    planner,
    state: RunStateModel | None = None,
    settings: AgentSettings | None = None,
) -> dict:
    """Run the agent loop until DONE, budget exhaustion or cancellation.

    Returns a dict with:
        success: bool
        status: COMPLETED | FAILED | CANCELLED
        steps: int
        summary: str
        history: list of StepRecord dicts
        run_id: str
    """
    settings = settings or AgentSettings.from_env()
    state = state or RunStateModel()
    max_steps = settings.max_steps
    delay_s = settings.step_delay_s
    system_prompt = prompts.build_system_prompt(settings.default_browser, settings.language)

    started = state.on_execution_started(goal, max_steps)
    run_id = started.run_id
    _log(f"Run ID: {run_id}")
    _log(f"Goal: {goal}")
    _log(f"Max steps: {max_steps} | Delay: {settings.step_delay_ms}ms")

    history: list[str] = []
    records: list[StepRecord] = []
    consecutive_failures = 0
    no_window_retries = 0
    step = 0

    def record(action_type: str, target_text, reasoning: str, success: bool) -> None:
        entry = StepRecord(
            step=step,
            action_type=action_type,
            target_text=target_text,
            reasoning=reasoning or "",
            success=success,
        )
        records.append(entry)
        state.on_step_completed(entry)

    def finish(status: RunStatus, summary: str) -> dict:
        state.on_execution_finished(status, summary)
        _log(f"=== {status.value}: {summary} ===")
        return {
            "success": status is RunStatus.COMPLETED,
            "status": status.value,
            "steps": step,
            "summary": summary,
            "history": [r.to_dict() for r in records],
            "run_id": run_id,
        }

    try:
        _pause(state, INITIAL_DELAY_MS / 1000.0)

        while step < max_steps:
            if state.is_cancel_requested():
                return finish(RunStatus.CANCELLED, f"Run cancelled by user ({step} steps completed)")

            if consecutive_failures >= STUCK_FORCE_BACK_THRESHOLD:
                step += 1
                _log(f"--- Step {step}/{max_steps} --- {consecutive_failures} consecutive failures, forcing BACK")
                success = _force_back(device)
                history.append(
                    f"Step {step} [SYSTEM]: Forced BACK due to {consecutive_failures} "
                    f"consecutive failures (result: {success})"
                )
                record("BACK", None, f"System recovery: {consecutive_failures} consecutive failures", success)
                consecutive_failures = 0
                _pause(state, delay_s)
                continue

            try:
                snapshot = device.snapshot()
            except NoActiveWindow as exc:
                no_window_retries += 1
                if no_window_retries < NO_WINDOW_RETRY_LIMIT:
                    _log(f"No active window ({exc}); retry {no_window_retries}/{NO_WINDOW_RETRY_LIMIT}")
                    _pause(state, delay_s)
                    continue
                step += 1
                message = f"No active window after {no_window_retries} attempts"
                _log(f"--- Step {step}/{max_steps} --- {message}")
                history.append(f"Step {step} [ERROR]: {message}")
                record(ERROR_ACTION, None, message, False)
                consecutive_failures += 1
                no_window_retries = 0
                _pause(state, delay_s)
                continue
            no_window_retries = 0

            step += 1
            _log(f"--- Step {step}/{max_steps} ---")

            if consecutive_failures >= STUCK_HINT_THRESHOLD:
                history.append(prompts.stuck_hint(consecutive_failures))
                _log(f"Stuck: {consecutive_failures} consecutive failures, hint added")

            proposal, error = _ask_planner(planner, system_prompt, goal, history, snapshot)
            if error is not None:
                _log(f"Planner failed ({error.kind.value}): {error.message}")
                history.append(f"Step {step} [ERROR]: {error.message}")
                record(ERROR_ACTION, None, error.message, False)
                consecutive_failures += 1
                _pause(state, delay_s)
                continue

            if proposal.is_done():
                record(proposal.action_type.value, None, proposal.reasoning, True)
                return finish(RunStatus.COMPLETED, f"Goal completed successfully ({step} steps)")

            success = resolver.execute(device, snapshot, proposal)
            history.append(proposal.to_history_entry(step, success))
            consecutive_failures = 0 if success else consecutive_failures + 1
            record(proposal.action_type.value, proposal.target_text, proposal.reasoning, success)
            _pause(state, delay_s)

        if state.is_cancel_requested():
            return finish(RunStatus.CANCELLED, f"Run cancelled by user ({step} steps completed)")
        return finish(RunStatus.FAILED, f"Reached max steps ({max_steps}) without completing goal")
    except Exception as exc:
        _log(f"Unexpected {type(exc).__name__}: {exc}")
        return finish(RunStatus.FAILED, f"Unexpected error: {exc}")
