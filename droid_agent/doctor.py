#!/usr/bin/env python3
"""Environment checks for droid-agent-runner.

Read-only: reports whether adb is reachable, which devices are attached,
which planner credentials are present (never their values), and whether
the MCP SDK is importable.
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys

from droid_agent import adbwrap
from droid_agent.config import _PROJECT_ROOT, ConfigError, Provider


def _check_adb() -> dict:
    adb = adbwrap._find_adb()
    return {"ok": bool(adb), "path": adb}


def _check_devices() -> dict:
    if not adbwrap._has_adb():
        return {"ok": False, "error": "adb not found", "devices": []}
    devices = adbwrap.list_devices()
    ready = [d["serial"] for d in devices if d.get("state") == "device"]
    return {"ok": bool(ready), "ready": ready, "devices": devices}


def _check_keys() -> dict[str, bool]:
    return {p.key_env: bool(os.getenv(p.key_env, "").strip()) for p in Provider}


def _check_active_provider() -> dict:
    name = os.getenv("AGENT_PROVIDER", "") or "openai"
    try:
        provider = Provider.parse(name)
    except ConfigError as exc:
        return {"ok": False, "error": str(exc)}
    return {
        "ok": bool(os.getenv(provider.key_env, "").strip()),
        "provider": provider.name.lower(),
        "model": os.getenv("AGENT_MODEL", "").strip() or provider.default_model,
        "key_env": provider.key_env,
    }


def _check_mcp_importable() -> dict:
    return {"ok": importlib.util.find_spec("mcp") is not None}


def collect_checks() -> dict:
    checks: dict = {
        "project_root": str(_PROJECT_ROOT),
        "python": {"executable": sys.executable, "version": sys.version.split()[0]},
        "tools": {
            "adb": _check_adb(),
            "devices": _check_devices(),
            "mcp_importable": _check_mcp_importable(),
        },
        "keys": _check_keys(),
        "planner": _check_active_provider(),
        "hints": {
            "adb": "Install Android platform-tools and set ANDROID_HOME, or put adb on PATH.",
            "devices": "Enable USB debugging on the device and accept the host key prompt.",
        },
    }

    problems: list[str] = []
    if not checks["tools"]["adb"]["ok"]:
        problems.append("adb not found")
    elif not checks["tools"]["devices"]["ok"]:
        problems.append("no device in 'device' state")
    if not checks["planner"]["ok"]:
        planner = checks["planner"]
        problems.append(planner.get("error") or f"missing {planner['key_env']}")
    if not checks["tools"]["mcp_importable"]["ok"]:
        problems.append("mcp SDK not importable (MCP server unavailable)")

    checks["problems"] = problems
    # MCP is optional for CLI runs.
    checks["ok"] = all(
        [checks["tools"]["adb"]["ok"], checks["tools"]["devices"]["ok"], checks["planner"]["ok"]]
    )
    return checks


def main() -> int:
    payload = collect_checks()
    print(json.dumps(payload, indent=2))
    return 0 if payload.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
