#!/usr/bin/env python3
"""MCP server wrapper for droid-agent-runner.

Exposes the Android agent as tools callable from an MCP client over the
Model Context Protocol (stdio transport).

Sample client config:

    {
      "mcpServers": {
        "android-agent": {
          "command": "/path/to/droid-agent-runner/.venv/bin/python",
          "args": ["/path/to/droid-agent-runner/mcp_server.py"],
          "cwd": "/path/to/droid-agent-runner"
        }
      }
    }

Run standalone:  python mcp_server.py
"""

import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so droid_agent/ imports work
_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))
load_dotenv(os.path.expanduser("~/.env"))

from droid_agent import agent_loop, doctor, history_store, ui_tree
from droid_agent.config import AgentSettings, ConfigError, ModelSettings
from droid_agent.device import AndroidDevice, NoActiveWindow, resolve_serial
from droid_agent.planner import PlannerClient
from droid_agent.run_state import RunStateModel, RunStatus

# ---------------------------------------------------------------------------
# Process-wide run state
# ---------------------------------------------------------------------------

_state = RunStateModel()
_state.add_sink(history_store.JsonHistorySink())
_state.subscribe(history_store.EventLogListener())


def _connect(serial: str = "") -> AndroidDevice:
    resolved = resolve_serial(serial or None)
    if not resolved:
        raise RuntimeError("No Android device attached (check `adb devices`)")
    return AndroidDevice(resolved)


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "android-agent",
    instructions="Android device automation: run goals, dump UI trees, inspect and cancel runs",
)


def _run_goal(
    goal: str,
    serial: str,
    max_steps: int,
    step_delay_ms: int,
    provider: str,
    model: str,
) -> str:
    current = _state.snapshot()
    if current.status is RunStatus.RUNNING:
        return json.dumps(
            {"error": "a run is already in progress", "run_id": current.run_id, "command": current.command},
            indent=2,
        )

    try:
        settings = AgentSettings.from_env().with_overrides(
            max_steps=max_steps or None,
            step_delay_ms=step_delay_ms or None,
        )
        planner = PlannerClient(ModelSettings.from_env(provider=provider or None, model=model or None))
    except ConfigError as exc:
        return json.dumps({"error": "configuration", "detail": str(exc)}, indent=2)

    device = _connect(serial)
    try:
        result = agent_loop.run(goal, device, planner, state=_state, settings=settings)
    except RuntimeError as exc:
        return json.dumps({"error": str(exc)}, indent=2)
    result["run_paths"] = history_store.run_paths(result["run_id"])
    return json.dumps(result, indent=2, ensure_ascii=False)


@mcp.tool()
async def android_run_goal(
    goal: str,
    serial: str = "",
    max_steps: int = 0,
    step_delay_ms: int = 0,
    provider: str = "",
    model: str = "",
) -> str:
    """Run the agent loop with a plain-English goal.

    The agent snapshots the screen, asks the planner for one action,
    performs it, and repeats until DONE, the step budget runs out, or
    android_cancel_run is called. The loop runs in a worker thread so
    status and cancel calls are served meanwhile.

    Args:
        goal: Plain-English description of what to accomplish on the device.
        serial: adb serial of the target device (default: first attached).
        max_steps: Step budget, clamped to 5-30 (default: configured value).
        step_delay_ms: Delay between steps, clamped to 500-3000 (default: configured value).
        provider: openai, gemini, claude or deepseek (default: AGENT_PROVIDER).
        model: Model id (default: provider's first model).

    Returns:
        JSON string with keys: success, status, steps, summary, history, run_id.
    """
    return await asyncio.to_thread(_run_goal, goal, serial, max_steps, step_delay_ms, provider, model)


@mcp.tool()
def android_dump_tree(serial: str = "") -> str:
    """Dump the current UI tree of the device screen.

    Args:
        serial: adb serial of the target device (default: first attached).

    Returns:
        JSON UI tree with class, text, hint, desc, id, bounds and flags.
    """
    device = _connect(serial)
    try:
        tree = device.snapshot()
    except NoActiveWindow as exc:
        return json.dumps({"error": str(exc)}, indent=2)
    return ui_tree.to_json(tree, indent=2)


@mcp.tool()
def android_run_status() -> str:
    """Report the live run state, or the last finished run when idle."""
    current = _state.snapshot()
    payload = current.to_dict()
    last = _state.last_record
    if current.status is RunStatus.IDLE and last is not None:
        payload["last_run"] = {
            "run_id": last.run_id,
            "command": last.command,
            "status": last.status.value,
            "result_message": last.result_message,
            "steps": len(last.steps()),
        }
    return json.dumps(payload, indent=2, ensure_ascii=False)


@mcp.tool()
def android_cancel_run() -> str:
    """Ask the running agent loop to stop after its current step."""
    requested = _state.request_cancel()
    return json.dumps({"cancel_requested": requested, "run_id": _state.snapshot().run_id}, indent=2)


@mcp.tool()
def android_list_runs(limit: int = 20) -> str:
    """List recent persisted runs."""
    return json.dumps(history_store.list_runs(limit=limit), indent=2, ensure_ascii=False)


@mcp.tool()
def android_replay_run(run_id: str = "") -> str:
    """Return the stored record, steps and event log for a run (default: latest)."""
    run_id = run_id or history_store.latest_run_id() or ""
    if not run_id:
        return json.dumps({"error": "no stored runs"}, indent=2)
    record = history_store.load_record(run_id)
    if record is None:
        return json.dumps({"error": f"run '{run_id}' not found"}, indent=2)
    return json.dumps(
        {
            "run_id": run_id,
            "record": record.to_dict(),
            "steps": [s.to_dict() for s in record.steps()],
            "events": history_store.load_events(run_id),
        },
        indent=2,
        ensure_ascii=False,
    )


@mcp.tool()
def android_runtime_health() -> str:
    """Report adb, device and planner credential status."""
    return json.dumps(doctor.collect_checks(), indent=2)


if __name__ == "__main__":
    mcp.run(transport="stdio")
