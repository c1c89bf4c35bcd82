import pytest

from droid_agent import adbwrap, device
from droid_agent.device import SCROLL_BACKWARD, SCROLL_FORWARD, AndroidDevice, NoActiveWindow
from droid_agent.ui_tree import Bounds, UiNode


@pytest.fixture
def adb_calls(monkeypatch):
    calls: list[tuple] = []

    def recorder(name):
        def fake(serial, *args, **kwargs):
            calls.append((name, serial) + args)
            return True

        return fake

    for name in ("tap", "swipe", "input_text", "key_event", "press_back", "press_home"):
        monkeypatch.setattr(adbwrap, name, recorder(name))
    return calls


def test_snapshot_raises_when_dump_is_empty(monkeypatch):
    monkeypatch.setattr(adbwrap, "dump_hierarchy", lambda serial: "")

    with pytest.raises(NoActiveWindow):
        AndroidDevice("emulator-5554").snapshot()


def test_snapshot_parses_dump(monkeypatch):
    xml = '<hierarchy rotation="0"><node text="Clock" clickable="true" bounds="[0,0][10,10]" /></hierarchy>'
    monkeypatch.setattr(adbwrap, "dump_hierarchy", lambda serial: xml)

    tree = AndroidDevice("emulator-5554").snapshot()

    assert tree.text == "Clock"
    assert tree.clickable is True


def test_tap_uses_bounds_center(adb_calls):
    node = UiNode(text="OK", bounds=Bounds(100, 200, 300, 400), clickable=True)

    assert AndroidDevice("s1").tap(node) is True
    assert adb_calls == [("tap", "s1", 200, 300)]


def test_tap_refuses_empty_bounds(adb_calls):
    assert AndroidDevice("s1").tap(UiNode(text="ghost")) is False
    assert adb_calls == []


def test_set_text_clears_existing_content(adb_calls):
    field = UiNode(text="abc", bounds=Bounds(0, 0, 100, 50), editable=True)

    assert AndroidDevice("s1").set_text(field, "new york") is True

    assert adb_calls[0] == ("tap", "s1", 50, 25)
    assert adb_calls[1] == (
        "key_event",
        "s1",
        adbwrap.KEYCODE_MOVE_END,
        adbwrap.KEYCODE_DEL,
        adbwrap.KEYCODE_DEL,
        adbwrap.KEYCODE_DEL,
    )
    assert adb_calls[2] == ("input_text", "s1", "new york")


def test_set_text_on_empty_field_skips_clearing(adb_calls):
    field = UiNode(bounds=Bounds(0, 0, 100, 50), editable=True)

    AndroidDevice("s1").set_text(field, "hi")

    assert [c[0] for c in adb_calls] == ["tap", "input_text"]


def test_set_text_refuses_non_ascii(adb_calls):
    field = UiNode(bounds=Bounds(0, 0, 100, 50), editable=True)

    assert AndroidDevice("s1").set_text(field, "\uc548\ub155") is False
    assert adb_calls == []


def test_scroll_forward_swipes_upward(adb_calls):
    lst = UiNode(bounds=Bounds(0, 400, 1000, 2000), scrollable=True)

    AndroidDevice("s1", swipe_ms=200).scroll(lst, SCROLL_FORWARD)

    name, serial, x1, y1, x2, y2, ms = adb_calls[0]
    assert name == "swipe"
    assert x1 == x2 == 500
    assert y1 == 1600 and y2 == 800
    assert ms == 200


def test_scroll_backward_swipes_downward(adb_calls):
    lst = UiNode(bounds=Bounds(0, 400, 1000, 2000), scrollable=True)

    AndroidDevice("s1").scroll(lst, SCROLL_BACKWARD)

    _, _, _, y1, _, y2, _ = adb_calls[0]
    assert y1 < y2


def test_global_actions(adb_calls):
    dev = AndroidDevice("s1")

    dev.global_back()
    dev.global_home()

    assert [c[0] for c in adb_calls] == ["press_back", "press_home"]


def test_resolve_serial(monkeypatch):
    monkeypatch.setattr(
        adbwrap,
        "list_devices",
        lambda: [{"serial": "off1", "state": "offline"}, {"serial": "ok1", "state": "device"}],
    )

    assert device.resolve_serial() == "ok1"
    assert device.resolve_serial("ok1") == "ok1"
    assert device.resolve_serial("off1") is None
