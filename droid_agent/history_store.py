"""Execution history on disk: one directory per run under _artifacts/runs/."""

import json
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path

from droid_agent.run_state import ExecutionRecord, RunState

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_RUNS_ROOT = _PROJECT_ROOT / "_artifacts" / "runs"


def _log(msg: str) -> None:
    print(f"[history] {msg}", file=sys.stderr)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _run_dir(run_id: str) -> Path:
    return _RUNS_ROOT / run_id


def _record_path(run_id: str) -> Path:
    return _run_dir(run_id) / "record.json"


def _events_path(run_id: str) -> Path:
    return _run_dir(run_id) / "events.jsonl"


def save_record(record: ExecutionRecord) -> Path:
    """Write record.json for a finished run."""
    run_dir = _run_dir(record.run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    path = _record_path(record.run_id)
    path.write_text(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))
    return path


def load_record(run_id: str) -> ExecutionRecord | None:
    """Load record.json for a run, returning None if absent/corrupt."""
    path = _record_path(run_id)
    if not path.exists():
        return None
    try:
        return ExecutionRecord.from_dict(json.loads(path.read_text()))
    except (json.JSONDecodeError, KeyError, ValueError) as exc:
        _log(f"Unreadable record for {run_id}: {exc}")
        return None


def append_event(run_id: str, event: dict) -> None:
    """Append one event line to events.jsonl."""
    run_dir = _run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    payload = dict(event)
    payload.setdefault("timestamp", _now_iso())
    with _events_path(run_id).open("a") as f:
        f.write(json.dumps(payload, ensure_ascii=False) + "\n")


def load_events(run_id: str) -> list[dict]:
    path = _events_path(run_id)
    if not path.exists():
        return []
    events: list[dict] = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError:
            continue
    return events


def list_runs(limit: int = 20) -> list[dict]:
    """Recent run summaries, newest first."""
    if not _RUNS_ROOT.exists():
        return []

    items: list[dict] = []
    for entry in _RUNS_ROOT.iterdir():
        if not entry.is_dir():
            continue
        record = load_record(entry.name)
        if record is None:
            continue
        items.append(
            {
                "run_id": record.run_id,
                "command": record.command,
                "status": record.status.value,
                "steps": len(record.steps()),
                "result_message": record.result_message,
                "start_time": record.start_time,
                "end_time": record.end_time,
            }
        )

    items.sort(key=lambda row: row["start_time"], reverse=True)
    return items[: max(1, limit)]


def latest_run_id() -> str | None:
    runs = list_runs(limit=1)
    return runs[0]["run_id"] if runs else None


def clear_history() -> int:
    """Delete every stored run. Returns how many were removed."""
    if not _RUNS_ROOT.exists():
        return 0
    removed = 0
    for entry in _RUNS_ROOT.iterdir():
        if entry.is_dir():
            shutil.rmtree(entry)
            removed += 1
    _log(f"Cleared {removed} run(s)")
    return removed


def run_paths(run_id: str) -> dict:
    """Return canonical artifact paths for a run."""
    return {
        "run_dir": str(_run_dir(run_id)),
        "record_path": str(_record_path(run_id)),
        "events_path": str(_events_path(run_id)),
    }


class JsonHistorySink:
    """State-model sink that persists each finished run."""

    def __call__(self, record: ExecutionRecord) -> None:
        path = save_record(record)
        append_event(
            record.run_id,
            {
                "type": "run_finished",
                "status": record.status.value,
                "result_message": record.result_message,
                "steps": len(record.steps()),
            },
        )
        _log(f"Saved {record.run_id} -> {path}")


class EventLogListener:
    """State-model listener that journals step and status transitions."""

    def __init__(self):
        self._seen_steps: dict[str, int] = {}

    def __call__(self, state: RunState) -> None:
        if not state.run_id:
            return
        seen = self._seen_steps.get(state.run_id)
        if seen is None:
            append_event(
                state.run_id,
                {"type": "run_started", "command": state.command, "max_steps": state.max_steps},
            )
            seen = 0
        for step in state.live_steps[seen:]:
            append_event(state.run_id, {"type": "step", **step.to_dict()})
        self._seen_steps[state.run_id] = len(state.live_steps)
        if state.status.is_terminal:
            self._seen_steps.pop(state.run_id, None)
