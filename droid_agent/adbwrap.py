"""adbwrap.py - Wrapper around the Android Debug Bridge (adb) CLI."""

import os
import shutil
import subprocess
import sys

DUMP_PATH = "/sdcard/window_dump.xml"

KEYCODE_HOME = "KEYCODE_HOME"
KEYCODE_BACK = "KEYCODE_BACK"
KEYCODE_DEL = "KEYCODE_DEL"
KEYCODE_MOVE_END = "KEYCODE_MOVE_END"

_adb_path: str | None = None

# Characters the device shell would otherwise interpret inside `input text`.
_SHELL_SPECIAL = set("\\'\"&<>|;()$`*?#~!")


def _log(msg: str) -> None:
    print(f"[adb] {msg}", file=sys.stderr)


def _find_adb() -> str | None:
    """Find the adb binary - check ANDROID_HOME first, then system PATH."""
    global _adb_path
    if _adb_path is not None:
        return _adb_path if _adb_path else None

    for env_var in ("ANDROID_HOME", "ANDROID_SDK_ROOT"):
        sdk_root = os.getenv(env_var, "")
        if not sdk_root:
            continue
        sdk_adb = os.path.join(sdk_root, "platform-tools", "adb")
        if os.path.isfile(sdk_adb) and os.access(sdk_adb, os.X_OK):
            _adb_path = sdk_adb
            _log(f"adb found in {env_var}: {_adb_path}")
            return _adb_path

    system_adb = shutil.which("adb")
    if system_adb:
        _adb_path = system_adb
        _log(f"adb found on PATH: {_adb_path}")
        return _adb_path

    _adb_path = ""  # empty string = not found (but cached)
    _log("adb CLI not found")
    return None


def _has_adb() -> bool:
    return _find_adb() is not None


def _run(cmd: list[str], timeout: int = 30) -> tuple[str, str, int]:
    """Run a subprocess command and return (stdout, stderr, returncode)."""
    _log(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        _log(f"timed out after {timeout}s")
        return "", f"timeout after {timeout}s", -1
    except OSError as exc:
        _log(f"could not start: {exc}")
        return "", str(exc), -1
    if result.returncode != 0:
        _log(f"stderr: {result.stderr.strip()}")
    return result.stdout, result.stderr, result.returncode


def _adb(serial: str | None, *args: str, timeout: int = 30) -> tuple[str, str, int]:
    """Run `adb [-s serial] args...`. Returns rc=-1 when adb is missing."""
    adb = _find_adb()
    if adb is None:
        return "", "adb not found", -1
    cmd = [adb]
    if serial:
        cmd += ["-s", serial]
    cmd += list(args)
    return _run(cmd, timeout=timeout)


def escape_input_text(text: str) -> str:
    """Escape text for `adb shell input text` (spaces become %s)."""
    out: list[str] = []
    for ch in text:
        if ch == " ":
            out.append("%s")
        elif ch in _SHELL_SPECIAL:
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def list_devices() -> list[dict]:
    """List attached devices. Returns dicts with keys: serial, state."""
    stdout, _, rc = _adb(None, "devices", timeout=10)
    if rc != 0:
        return []
    devices = []
    for line in stdout.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2:
            devices.append({"serial": parts[0], "state": parts[1]})
    return devices


def dump_hierarchy(serial: str | None) -> str:
    """Dump the current UI hierarchy. Returns raw XML, or "" on failure."""
    stdout, stderr, rc = _adb(serial, "shell", "uiautomator", "dump", DUMP_PATH)
    if rc != 0 or "ERROR" in stdout:
        _log(f"uiautomator dump failed: {(stderr or stdout).strip()}")
        return ""

    stdout, stderr, rc = _adb(serial, "shell", "cat", DUMP_PATH)
    if rc != 0 or "<hierarchy" not in stdout:
        _log(f"Could not read {DUMP_PATH}: {stderr.strip()}")
        return ""

    _log(f"Got hierarchy ({len(stdout)} bytes)")
    return stdout


def tap(serial: str | None, x: int, y: int) -> bool:
    """Tap at pixel coordinates (x, y)."""
    _, stderr, rc = _adb(serial, "shell", "input", "tap", str(x), str(y))
    if rc == 0:
        _log(f"Tapped ({x}, {y})")
        return True
    _log(f"Failed to tap ({x}, {y}): {stderr.strip()}")
    return False


def swipe(serial: str | None, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 300) -> bool:
    """Swipe from (x1, y1) to (x2, y2)."""
    _, stderr, rc = _adb(
        serial, "shell", "input", "swipe",
        str(x1), str(y1), str(x2), str(y2), str(duration_ms),
    )
    if rc == 0:
        _log(f"Swiped ({x1}, {y1}) -> ({x2}, {y2})")
        return True
    _log(f"Failed to swipe: {stderr.strip()}")
    return False


def split_input_text(text: str) -> list[str]:
    """Split text so no chunk holds a literal "%s".

    `input text` always turns "%s" into a space and has no escape for it, so
    "50%sale" is typed as "50%" then "sale".
    """
    pieces = text.split("%s")
    chunks = []
    for i, piece in enumerate(pieces):
        if i > 0:
            piece = "s" + piece
        if i < len(pieces) - 1:
            piece += "%"
        chunks.append(piece)
    return [c for c in chunks if c]


def input_text(serial: str | None, text: str) -> bool:
    """Type text into the focused field."""
    if not text:
        return True
    for chunk in split_input_text(text):
        _, stderr, rc = _adb(serial, "shell", "input", "text", escape_input_text(chunk))
        if rc != 0:
            _log(f"Failed to type text: {stderr.strip()}")
            return False
    _log(f"Typed text ({len(text)} chars)")
    return True


def key_event(serial: str | None, *keycodes: str) -> bool:
    """Send one or more key events in a single `input keyevent` call."""
    if not keycodes:
        return True
    _, stderr, rc = _adb(serial, "shell", "input", "keyevent", *keycodes)
    if rc == 0:
        _log(f"Key event {keycodes[0]}" + (f" (+{len(keycodes) - 1})" if len(keycodes) > 1 else ""))
        return True
    _log(f"Failed key event {keycodes[0]}: {stderr.strip()}")
    return False


def press_back(serial: str | None) -> bool:
    return key_event(serial, KEYCODE_BACK)


def press_home(serial: str | None) -> bool:
    return key_event(serial, KEYCODE_HOME)
