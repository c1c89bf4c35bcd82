"""run_state.py - Observable state of the current run.

The agent loop is the only writer. Everything else (CLI progress output,
MCP status tool, history sinks) reads snapshots or gets notified. Listeners
and sinks are invoked on one background worker, in publication order, so a
slow or failing observer never stalls the loop.
"""

import json
import sys
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable


def _log(msg: str) -> None:
    print(f"[state] {msg}", file=sys.stderr)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_run_id() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    suffix = uuid.uuid4().hex[:8]
    return f"run_{stamp}_{suffix}"


class RunStatus(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


@dataclass(frozen=True)
class StepRecord:
    step: int
    action_type: str
    target_text: str | None
    reasoning: str
    success: bool
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> "StepRecord":
        return StepRecord(
            step=int(data.get("step", 0)),
            action_type=str(data.get("action_type", "")),
            target_text=data.get("target_text"),
            reasoning=str(data.get("reasoning", "")),
            success=bool(data.get("success", False)),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass(frozen=True)
class RunState:
    status: RunStatus = RunStatus.IDLE
    command: str = ""
    current_step: int = 0
    max_steps: int = 0
    current_reasoning: str = ""
    live_steps: tuple[StepRecord, ...] = ()
    cancel_requested: bool = False
    run_id: str = ""

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "command": self.command,
            "current_step": self.current_step,
            "max_steps": self.max_steps,
            "current_reasoning": self.current_reasoning,
            "cancel_requested": self.cancel_requested,
            "live_steps": [s.to_dict() for s in self.live_steps],
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """One finished run, as handed to history sinks."""

    run_id: str
    command: str
    status: RunStatus
    result_message: str
    steps_json: str
    start_time: int
    end_time: int

    def steps(self) -> list[StepRecord]:
        try:
            raw = json.loads(self.steps_json or "[]")
        except json.JSONDecodeError:
            return []
        return [StepRecord.from_dict(item) for item in raw if isinstance(item, dict)]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @staticmethod
    def from_dict(data: dict) -> "ExecutionRecord":
        return ExecutionRecord(
            run_id=str(data["run_id"]),
            command=str(data.get("command", "")),
            status=RunStatus(data.get("status", RunStatus.FAILED.value)),
            result_message=str(data.get("result_message", "")),
            steps_json=str(data.get("steps_json", "[]")),
            start_time=int(data.get("start_time", 0)),
            end_time=int(data.get("end_time", 0)),
        )


Listener = Callable[[RunState], None]
Sink = Callable[[ExecutionRecord], None]


class RunStateModel:
    """Lock-guarded aggregate: one run at a time, snapshots out."""

    def __init__(self):
        self._lock = threading.RLock()
        self._state = RunState()
        self._listeners: list[Listener] = []
        self._sinks: list[Sink] = []
        self._cancel = threading.Event()
        self._started_at = 0
        self._last_record: ExecutionRecord | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="run-state")

    # -- observers ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def add_sink(self, sink: Sink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def snapshot(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def last_record(self) -> ExecutionRecord | None:
        with self._lock:
            return self._last_record

    # -- writer side -------------------------------------------------------

    def on_execution_started(self, command: str, max_steps: int) -> RunState:
        with self._lock:
            if self._state.status is RunStatus.RUNNING:
                raise RuntimeError(f"run {self._state.run_id} is already in progress")
            self._cancel.clear()
            self._started_at = now_ms()
            self._state = RunState(
                status=RunStatus.RUNNING,
                command=command,
                max_steps=max_steps,
                run_id=new_run_id(),
            )
            state = self._state
        _log(f"Run {state.run_id} started: {command!r} (max {max_steps} steps)")
        self._publish(state)
        return state

    def on_step_completed(self, record: StepRecord) -> None:
        with self._lock:
            current = self._state
            if current.status is not RunStatus.RUNNING:
                _log(f"Ignoring step {record.step}: no run in progress")
                return
            if current.current_step >= current.max_steps:
                _log(f"Ignoring step {record.step}: budget of {current.max_steps} already used")
                return
            steps = current.live_steps + (record,)
            if record.step != len(steps):
                _log(f"Step number {record.step} out of sequence (expected {len(steps)})")
            self._state = replace(
                current,
                current_step=len(steps),
                current_reasoning=record.reasoning,
                live_steps=steps,
            )
            state = self._state
        self._publish(state)

    def on_execution_finished(self, status: RunStatus, message: str) -> ExecutionRecord | None:
        """Publish the terminal status, emit the record, then return to IDLE."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        with self._lock:
            current = self._state
            if current.status is not RunStatus.RUNNING:
                _log(f"Ignoring finish ({status.value}): no run in progress")
                return None
            final = replace(current, status=status, current_reasoning=message)
            record = ExecutionRecord(
                run_id=current.run_id,
                command=current.command,
                status=status,
                result_message=message,
                steps_json=json.dumps([s.to_dict() for s in current.live_steps], ensure_ascii=False),
                start_time=self._started_at,
                end_time=now_ms(),
            )
            self._last_record = record
            self._state = RunState()
            self._cancel.clear()
            sinks = list(self._sinks)
        _log(f"Run {record.run_id} finished: {status.value} - {message}")
        self._publish(final)
        for sink in sinks:
            self._executor.submit(self._call_safely, sink, record)
        self._publish(RunState())
        return record

    # -- cancellation ------------------------------------------------------

    def request_cancel(self) -> bool:
        """Ask the running loop to stop. Returns False if nothing is running."""
        with self._lock:
            if self._state.status is not RunStatus.RUNNING:
                return False
            self._cancel.set()
            self._state = replace(self._state, cancel_requested=True)
            state = self._state
        _log("Cancel requested")
        self._publish(state)
        return True

    def is_cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def wait_for_cancel(self, seconds: float) -> bool:
        """Sleep up to `seconds`; return True early if cancel is requested."""
        if seconds <= 0:
            return self._cancel.is_set()
        return self._cancel.wait(seconds)

    # -- lifecycle ---------------------------------------------------------

    def drain(self, timeout: float | None = 5.0) -> None:
        """Block until every queued notification has been delivered."""
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    # -- dispatch ----------------------------------------------------------

    def _publish(self, state: RunState) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._executor.submit(self._call_safely, listener, state)

    @staticmethod
    def _call_safely(fn: Callable, arg) -> None:
        try:
            fn(arg)
        except Exception as exc:
            name = getattr(fn, "__name__", type(fn).__name__)
            _log(f"Observer {name} failed: {type(exc).__name__}: {exc}")
