"""device.py - UI source for the agent loop: snapshots plus action primitives.

AndroidDevice is the only object the core talks to for screen state and
input. Any object with the same methods works (tests use a fake), so the
loop and resolver stay independent of adb.
"""

import sys

from droid_agent import adbwrap, ui_tree
from droid_agent.ui_tree import UiNode

SCROLL_FORWARD = "forward"
SCROLL_BACKWARD = "backward"


class NoActiveWindow(Exception):
    """No window could be captured. Transient: wait and snapshot again."""


def _log(msg: str) -> None:
    print(f"[device] {msg}", file=sys.stderr)


def resolve_serial(serial: str | None = None) -> str | None:
    """Return the requested serial if attached, else the first ready device."""
    devices = [d for d in adbwrap.list_devices() if d.get("state") == "device"]
    if serial:
        if any(d["serial"] == serial for d in devices):
            return serial
        _log(f"Device {serial} is not attached")
        return None
    if not devices:
        _log("No attached device found")
        return None
    return devices[0]["serial"]


class AndroidDevice:
    """adb-backed UI source for one attached device."""

    def __init__(self, serial: str | None = None, swipe_ms: int = 300):
        self.serial = serial
        self.swipe_ms = swipe_ms

    def snapshot(self) -> UiNode:
        """Capture the current screen as an immutable UiNode tree."""
        raw = adbwrap.dump_hierarchy(self.serial)
        tree = ui_tree.parse_hierarchy(raw) if raw else None
        if tree is None:
            raise NoActiveWindow(f"no active window on {self.serial or 'default device'}")
        return tree

    def tap(self, node: UiNode) -> bool:
        if node.bounds.is_empty():
            _log(f"tap: node {node.element_id or node.text!r} has empty bounds")
            return False
        x, y = node.bounds.center()
        return adbwrap.tap(self.serial, x, y)

    def set_text(self, node: UiNode, text: str) -> bool:
        """Focus the field, clear what it holds, and type `text`.

        `input text` only delivers ASCII, so other text is refused up front.
        """
        if not text.isascii():
            _log("set_text: non-ASCII text cannot be typed over adb")
            return False
        if not self.tap(node):
            return False
        existing = len(node.text or "")
        if existing:
            keys = [adbwrap.KEYCODE_MOVE_END] + [adbwrap.KEYCODE_DEL] * existing
            if not adbwrap.key_event(self.serial, *keys):
                return False
        return adbwrap.input_text(self.serial, text)

    def scroll(self, node: UiNode, direction: str = SCROLL_FORWARD) -> bool:
        """Swipe inside the node's bounds. Forward reveals content below."""
        if node.bounds.is_empty():
            return False
        b = node.bounds
        cx = (b.left + b.right) // 2
        upper = b.top + b.height // 4
        lower = b.bottom - b.height // 4
        if direction == SCROLL_BACKWARD:
            return adbwrap.swipe(self.serial, cx, upper, cx, lower, self.swipe_ms)
        return adbwrap.swipe(self.serial, cx, lower, cx, upper, self.swipe_ms)

    def global_back(self) -> bool:
        return adbwrap.press_back(self.serial)

    def global_home(self) -> bool:
        return adbwrap.press_home(self.serial)
