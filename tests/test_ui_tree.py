import json

from droid_agent import ui_tree
from droid_agent.ui_tree import Bounds, UiNode

SETTINGS_XML = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<hierarchy rotation="0">
  <node index="0" text="" resource-id="" class="android.widget.FrameLayout" package="com.android.settings"
        content-desc="" clickable="false" scrollable="false" bounds="[0,0][1080,2400]">
    <node index="0" text="" resource-id="com.android.settings:id/search_bar" class="android.widget.EditText"
          package="com.android.settings" content-desc="" clickable="true" scrollable="false"
          hint="Search settings" bounds="[40,120][1040,240]" />
    <node index="1" text="" resource-id="com.android.settings:id/recycler_view"
          class="androidx.recyclerview.widget.RecyclerView" package="com.android.settings" content-desc=""
          clickable="false" scrollable="true" bounds="[0,260][1080,2400]">
      <node index="0" text="" resource-id="" class="android.widget.LinearLayout" package="com.android.settings"
            content-desc="" clickable="true" scrollable="false" bounds="[0,260][1080,420]">
        <node index="0" text="Network &amp; internet" resource-id="android:id/title"
              class="android.widget.TextView" package="com.android.settings" content-desc=""
              clickable="false" scrollable="false" bounds="[180,290][700,350]" />
      </node>
    </node>
  </node>
</hierarchy>"""


def test_parse_hierarchy_builds_tree_with_flags():
    tree = ui_tree.parse_hierarchy(SETTINGS_XML)

    assert tree is not None
    assert tree.class_name == "android.widget.FrameLayout"
    assert tree.text is None
    assert tree.bounds == Bounds(0, 0, 1080, 2400)

    search, recycler = tree.children
    assert search.editable is True
    assert search.clickable is True
    assert search.hint_text == "Search settings"
    assert search.element_id == "com.android.settings:id/search_bar"

    assert recycler.scrollable is True
    row = recycler.children[0]
    assert row.clickable is True
    assert row.children[0].text == "Network & internet"
    assert row.children[0].clickable is False


def test_parse_hierarchy_ignores_surrounding_noise():
    raw = "junk before\n" + SETTINGS_XML + "\nUI hierchary dumped to: /dev/tty\n"

    tree = ui_tree.parse_hierarchy(raw)

    assert tree is not None
    assert ui_tree.count_nodes(tree) == 5


def test_parse_hierarchy_returns_none_for_bad_input():
    assert ui_tree.parse_hierarchy("") is None
    assert ui_tree.parse_hierarchy("ERROR: null root node returned by UiTestAutomationBridge.") is None
    assert ui_tree.parse_hierarchy("<hierarchy><node") is None
    assert ui_tree.parse_hierarchy('<hierarchy rotation="0"></hierarchy>') is None


def test_multiple_windows_are_wrapped_in_virtual_root():
    raw = """<hierarchy rotation="0">
      <node class="android.widget.FrameLayout" bounds="[0,0][1080,2000]" />
      <node class="android.widget.FrameLayout" bounds="[0,2000][1080,2400]" />
    </hierarchy>"""

    tree = ui_tree.parse_hierarchy(raw)

    assert tree.class_name == "VirtualRoot"
    assert len(tree.children) == 2
    assert tree.bounds == Bounds(0, 0, 1080, 2400)


def test_edit_text_class_is_editable_without_attribute():
    raw = """<hierarchy rotation="0">
      <node class="android.widget.AutoCompleteTextView" clickable="true" bounds="[0,0][100,50]" />
    </hierarchy>"""

    tree = ui_tree.parse_hierarchy(raw)

    assert tree.editable is True


def test_malformed_bounds_become_empty():
    raw = """<hierarchy rotation="0">
      <node class="android.view.View" bounds="garbage" />
    </hierarchy>"""

    tree = ui_tree.parse_hierarchy(raw)

    assert tree.bounds.is_empty()


def test_iter_nodes_is_document_order():
    tree = UiNode(
        text="root",
        children=(
            UiNode(text="a", children=(UiNode(text="a1"), UiNode(text="a2"))),
            UiNode(text="b"),
        ),
    )

    assert [n.text for n in ui_tree.iter_nodes(tree)] == ["root", "a", "a1", "a2", "b"]


def test_to_json_drops_empty_fields_and_false_flags():
    node = UiNode(
        text="OK",
        class_name="android.widget.Button",
        bounds=Bounds(10, 20, 110, 70),
        clickable=True,
    )

    payload = json.loads(ui_tree.to_json(node))

    assert payload == {
        "class": "android.widget.Button",
        "text": "OK",
        "bounds": [10, 20, 110, 70],
        "clickable": True,
    }


def test_to_json_keeps_non_ascii_text():
    node = UiNode(text="설정")

    assert "설정" in ui_tree.to_json(node)


def test_bounds_center_and_emptiness():
    b = Bounds(100, 200, 300, 400)

    assert b.center() == (200, 300)
    assert b.width == 200
    assert not b.is_empty()
    assert Bounds(5, 5, 5, 50).is_empty()
