#!/usr/bin/env python3
"""Droid Agent Runner - CLI for goal-driven Android automation over adb.

Usage:
    python main.py --goal "Open Settings and turn on Wi-Fi"
    python main.py --goal "Search YouTube for lo-fi" --provider claude --max-steps 20
    python main.py --dump-tree
    python main.py --tap-text "Network & internet"
    python main.py --list-runs
    python main.py --last-run
"""

import argparse
import json
import signal
import sys

from dotenv import load_dotenv

load_dotenv()

from droid_agent import history_store, resolver, ui_tree
from droid_agent.actions import ActionProposal, ActionType
from droid_agent.config import (
    BROWSER_OPTIONS,
    LANGUAGE_OPTIONS,
    AgentSettings,
    ConfigError,
    ModelSettings,
    Provider,
)
from droid_agent.device import AndroidDevice, NoActiveWindow, resolve_serial
from droid_agent.run_state import RunState, RunStateModel, RunStatus


def log(msg: str) -> None:
    print(f"[main] {msg}", file=sys.stderr)


def connect(serial: str | None) -> AndroidDevice:
    """Pick an attached device or exit."""
    resolved = resolve_serial(serial)
    if not resolved:
        print("FATAL: No Android device attached (check `adb devices`)", file=sys.stderr)
        sys.exit(1)
    log(f"Device: {resolved}")
    return AndroidDevice(resolved)


def _progress_printer():
    printed = {"count": 0}

    def on_state(state: RunState) -> None:
        for record in state.live_steps[printed["count"]:]:
            mark = "ok" if record.success else "FAILED"
            target = f" '{record.target_text}'" if record.target_text else ""
            print(
                f"  [{record.step}/{state.max_steps}] {record.action_type}{target} ({mark}) {record.reasoning}",
                file=sys.stderr,
            )
        printed["count"] = len(state.live_steps)
        if state.status is RunStatus.IDLE:
            printed["count"] = 0

    return on_state


def do_run(args) -> int:
    from droid_agent import agent_loop
    from droid_agent.planner import PlannerClient

    try:
        settings = AgentSettings.from_env().with_overrides(
            max_steps=args.max_steps,
            step_delay_ms=args.delay_ms,
            default_browser=args.browser,
            language=args.language,
        )
        planner = PlannerClient(ModelSettings.from_env(provider=args.provider, model=args.model))
    except ConfigError as exc:
        print(f"CONFIG ERROR: {exc}", file=sys.stderr)
        return 2

    device = connect(args.serial)
    log(f"Planner: {planner.provider_name} / {planner.settings.model}")

    state = RunStateModel()
    state.add_sink(history_store.JsonHistorySink())
    state.subscribe(history_store.EventLogListener())
    state.subscribe(_progress_printer())

    def on_sigint(signum, frame):
        if state.request_cancel():
            log("Cancelling after the current step...")

    previous = signal.signal(signal.SIGINT, on_sigint)
    try:
        result = agent_loop.run(args.goal, device, planner, state=state, settings=settings)
    finally:
        signal.signal(signal.SIGINT, previous)
        state.drain()
        state.close()

    print(f"\n{'=' * 60}", file=sys.stderr)
    print(f"AGENT {result['status']} in {result['steps']} steps", file=sys.stderr)
    print(f"Summary: {result['summary']}", file=sys.stderr)
    print(f"Run: {result['run_id']}", file=sys.stderr)
    print(f"{'=' * 60}", file=sys.stderr)
    return 0 if result["success"] else 1


def do_dump_tree(device: AndroidDevice, verbose: bool = False):
    try:
        tree = device.snapshot()
    except NoActiveWindow as exc:
        print(f"WARNING: {exc}", file=sys.stderr)
        return None
    log(f"Found {ui_tree.count_nodes(tree)} UI nodes")
    if verbose:
        ui_tree.log_tree(tree)
    return tree


def do_last_run() -> int:
    run_id = history_store.latest_run_id()
    if run_id is None:
        print("No stored runs", file=sys.stderr)
        return 1
    record = history_store.load_record(run_id)
    payload = {
        "run_id": run_id,
        "record": record.to_dict() if record else None,
        "events": history_store.load_events(run_id),
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def do_tap(device: AndroidDevice, tree, tap_text: str) -> bool:
    proposal = ActionProposal(action_type=ActionType.CLICK, target_text=tap_text)
    node, tier = resolver.resolve_click(tree, proposal)
    if node is None:
        print(f"WARNING: No clickable node matches '{tap_text}'", file=sys.stderr)
        return False
    log(f"Tier {tier} match at {node.bounds.center()}")
    return device.tap(node)


def main():
    parser = argparse.ArgumentParser(
        description="Droid Agent Runner - Android automation via adb + LLM planner"
    )
    parser.add_argument("--goal", type=str, help="Natural language goal; runs the agent loop")
    parser.add_argument("--serial", type=str, help="adb device serial (default: first attached)")
    parser.add_argument(
        "--max-steps",
        type=int,
        help="Step budget, clamped to 5-30 (default: AGENT_MAX_STEPS or 15)",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        help="Delay between steps in ms, clamped to 500-3000 (default: AGENT_STEP_DELAY_MS or 1500)",
    )
    parser.add_argument(
        "--provider",
        type=str,
        choices=[p.name.lower() for p in Provider],
        help="Planner backend (default: AGENT_PROVIDER or openai)",
    )
    parser.add_argument("--model", type=str, help="Model id (default: provider's first model)")
    parser.add_argument(
        "--browser",
        type=str,
        choices=BROWSER_OPTIONS,
        help="Preferred browser app for web goals (default: AGENT_DEFAULT_BROWSER)",
    )
    parser.add_argument(
        "--language",
        type=str,
        choices=LANGUAGE_OPTIONS,
        help="Language for the planner's reasoning (default: AGENT_LANGUAGE or English)",
    )
    parser.add_argument("--dump-tree", action="store_true", help="Print the current UI tree as JSON")
    parser.add_argument("--tap-text", type=str, help="Tap the clickable node matching this text")
    parser.add_argument("--list-runs", action="store_true", help="List recent stored runs")
    parser.add_argument("--limit", type=int, default=20, help="How many runs --list-runs shows")
    parser.add_argument("--last-run", action="store_true", help="Print the most recent stored run and its events")
    parser.add_argument("--clear-history", action="store_true", help="Delete every stored run")

    args = parser.parse_args()

    if args.list_runs:
        print(json.dumps(history_store.list_runs(limit=args.limit), indent=2, ensure_ascii=False))
        sys.exit(0)

    if args.last_run:
        sys.exit(do_last_run())

    if args.clear_history:
        removed = history_store.clear_history()
        print(f"Removed {removed} stored run(s)", file=sys.stderr)
        sys.exit(0)

    if args.goal:
        sys.exit(do_run(args))

    if not any([args.dump_tree, args.tap_text]):
        parser.print_help()
        sys.exit(1)

    device = connect(args.serial)
    tree = do_dump_tree(device, verbose=args.dump_tree)
    if tree is None:
        sys.exit(1)

    if args.dump_tree:
        print(ui_tree.to_json(tree, indent=2))

    if args.tap_text and not do_tap(device, tree, args.tap_text):
        sys.exit(1)


if __name__ == "__main__":
    main()
