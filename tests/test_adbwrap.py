import os

from droid_agent import adbwrap


def _record_runs(monkeypatch, responses=None):
    """Replace _run; returns the list of commands it receives."""
    calls: list[list[str]] = []
    queue = list(responses or [])

    def fake_run(cmd, timeout=30):
        calls.append(cmd)
        if queue:
            return queue.pop(0)
        return "", "", 0

    monkeypatch.setattr(adbwrap, "_adb_path", "/sdk/platform-tools/adb")
    monkeypatch.setattr(adbwrap, "_run", fake_run)
    return calls


def test_find_adb_prefers_android_home(monkeypatch, tmp_path):
    sdk_adb = tmp_path / "platform-tools" / "adb"
    monkeypatch.setenv("ANDROID_HOME", str(tmp_path))
    monkeypatch.delenv("ANDROID_SDK_ROOT", raising=False)
    monkeypatch.setattr(adbwrap, "_adb_path", None)
    monkeypatch.setattr(adbwrap.shutil, "which", lambda name: "/usr/bin/adb")

    def isfile(path: str) -> bool:
        return os.path.abspath(path) == os.path.abspath(str(sdk_adb))

    monkeypatch.setattr(os.path, "isfile", isfile)
    monkeypatch.setattr(os, "access", lambda path, mode: isfile(path))

    assert adbwrap._find_adb() == str(sdk_adb)


def test_find_adb_caches_missing_binary(monkeypatch):
    monkeypatch.delenv("ANDROID_HOME", raising=False)
    monkeypatch.delenv("ANDROID_SDK_ROOT", raising=False)
    monkeypatch.setattr(adbwrap, "_adb_path", None)
    lookups = []

    def which(name):
        lookups.append(name)
        return None

    monkeypatch.setattr(adbwrap.shutil, "which", which)

    assert adbwrap._find_adb() is None
    assert adbwrap._find_adb() is None
    assert adbwrap._has_adb() is False
    assert lookups == ["adb"]


def test_adb_without_binary_reports_failure(monkeypatch):
    monkeypatch.setattr(adbwrap, "_adb_path", "")

    stdout, stderr, rc = adbwrap._adb("emulator-5554", "devices")

    assert rc == -1
    assert "adb not found" in stderr


def test_commands_target_the_serial(monkeypatch):
    calls = _record_runs(monkeypatch)

    assert adbwrap.tap("emulator-5554", 120, 340) is True

    assert calls == [["/sdk/platform-tools/adb", "-s", "emulator-5554", "shell", "input", "tap", "120", "340"]]


def test_swipe_passes_duration(monkeypatch):
    calls = _record_runs(monkeypatch)

    adbwrap.swipe(None, 500, 1500, 500, 600, 250)

    assert calls[0][1:] == ["shell", "input", "swipe", "500", "1500", "500", "600", "250"]


def test_escape_input_text():
    assert adbwrap.escape_input_text("hello world") == "hello%sworld"
    assert adbwrap.escape_input_text("a&b") == "a\\&b"
    assert adbwrap.escape_input_text("it's (ok)") == "it\\'s%s\\(ok\\)"


def test_split_input_text_breaks_literal_percent_s():
    assert adbwrap.split_input_text("hello world") == ["hello world"]
    assert adbwrap.split_input_text("50%sale") == ["50%", "sale"]
    assert adbwrap.split_input_text("%s%s") == ["%", "s%", "s"]
    assert adbwrap.split_input_text("5% off") == ["5% off"]


def test_input_text_types_percent_s_in_separate_calls(monkeypatch):
    calls = _record_runs(monkeypatch)

    assert adbwrap.input_text(None, "50%sale now") is True

    assert [c[-1] for c in calls] == ["50%", "sale%snow"]
    assert all(c[1:4] == ["shell", "input", "text"] for c in calls)


def test_input_text_stops_at_first_failed_chunk(monkeypatch):
    calls = _record_runs(monkeypatch, responses=[("", "error", 1)])

    assert adbwrap.input_text(None, "50%sale") is False
    assert len(calls) == 1


def test_input_text_empty_is_noop(monkeypatch):
    calls = _record_runs(monkeypatch)

    assert adbwrap.input_text(None, "") is True
    assert calls == []


def test_key_event_batches_keycodes(monkeypatch):
    calls = _record_runs(monkeypatch)

    adbwrap.key_event(None, adbwrap.KEYCODE_MOVE_END, adbwrap.KEYCODE_DEL, adbwrap.KEYCODE_DEL)

    assert calls[0][1:] == ["shell", "input", "keyevent", "KEYCODE_MOVE_END", "KEYCODE_DEL", "KEYCODE_DEL"]


def test_list_devices_parses_output(monkeypatch):
    _record_runs(
        monkeypatch,
        [("List of devices attached\nemulator-5554\tdevice\nR58M123\tunauthorized\n\n", "", 0)],
    )

    assert adbwrap.list_devices() == [
        {"serial": "emulator-5554", "state": "device"},
        {"serial": "R58M123", "state": "unauthorized"},
    ]


def test_dump_hierarchy_returns_xml(monkeypatch):
    xml = '<?xml version="1.0"?><hierarchy rotation="0"><node /></hierarchy>'
    calls = _record_runs(
        monkeypatch,
        [("UI hierchary dumped to: /sdcard/window_dump.xml\n", "", 0), (xml, "", 0)],
    )

    assert adbwrap.dump_hierarchy("emulator-5554") == xml
    assert calls[0][-3:] == ["uiautomator", "dump", adbwrap.DUMP_PATH]
    assert calls[1][-2:] == ["cat", adbwrap.DUMP_PATH]


def test_dump_hierarchy_failure_returns_empty(monkeypatch):
    _record_runs(monkeypatch, [("ERROR: null root node returned by UiTestAutomationBridge.\n", "", 0)])

    assert adbwrap.dump_hierarchy(None) == ""


def test_press_back_and_home_use_keycodes(monkeypatch):
    calls = _record_runs(monkeypatch)

    adbwrap.press_back(None)
    adbwrap.press_home(None)

    assert calls[0][-1] == "KEYCODE_BACK"
    assert calls[1][-1] == "KEYCODE_HOME"
