"""resolver.py - Resolve a proposal against the snapshot and perform it.

CLICK targets go through five tiers, each a full depth-first pass in
document order; the first node a tier finds wins. Text is ambiguous and
identifiers are not, and clickable containers usually wrap non-clickable
TextViews:

    ViewGroup (clickable, no text)        <- the real tap target
      +-- TextView (not clickable, "Alice")
      +-- ImageView (clickable, desc="Edit Alice's suggestion")

so child-text bubble-up (tier 3) runs before description matching (tier 4).

Failure to resolve is routine: execute() returns False, it does not raise.
"""

import sys
from typing import Callable

from droid_agent.actions import ActionProposal, ActionType
from droid_agent.device import SCROLL_BACKWARD, SCROLL_FORWARD
from droid_agent.ui_tree import UiNode, iter_nodes

TIER_ID = 1
TIER_OWN_TEXT = 2
TIER_CHILD_TEXT = 3
TIER_DESCRIPTION = 4
TIER_FALLBACK = 5


def _log(msg: str) -> None:
    print(f"[resolver] {msg}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Matching helpers (case-insensitive substring)
# ---------------------------------------------------------------------------


def _contains(value: str | None, target: str) -> bool:
    return value is not None and target.lower() in value.lower()


def _text_matches(node: UiNode, target: str) -> bool:
    return _contains(node.text, target)


def _desc_matches(node: UiNode, target: str) -> bool:
    return _contains(node.description, target)


def _subtree_contains_text(node: UiNode, target: str) -> bool:
    return any(_text_matches(n, target) or _desc_matches(n, target) for n in iter_nodes(node))


def _has_child_with_text(node: UiNode, target: str) -> bool:
    return any(_text_matches(child, target) for child in node.children)


def _first(tree: UiNode, predicate: Callable[[UiNode], bool]) -> UiNode | None:
    for node in iter_nodes(tree):
        if predicate(node):
            return node
    return None


# ---------------------------------------------------------------------------
# CLICK tiers
# ---------------------------------------------------------------------------


def find_by_id(tree: UiNode, target_id: str, target_text: str | None = None) -> UiNode | None:
    """Tier 1: clickable node whose identifier contains target_id."""
    if not target_id:
        return None

    def match(node: UiNode) -> bool:
        if not (node.clickable and _contains(node.element_id, target_id)):
            return False
        return not target_text or _subtree_contains_text(node, target_text)

    return _first(tree, match)


def find_by_own_text(tree: UiNode, target: str) -> UiNode | None:
    """Tier 2: clickable, non-editable node whose own text matches."""
    return _first(tree, lambda n: n.clickable and not n.editable and _text_matches(n, target))


def find_by_child_text(tree: UiNode, target: str) -> UiNode | None:
    """Tier 3: clickable container with a direct child whose text matches."""
    return _first(
        tree,
        lambda n: (
            n.clickable
            and not n.editable
            and not _text_matches(n, target)
            and _has_child_with_text(n, target)
        ),
    )


def find_by_description(tree: UiNode, target: str) -> UiNode | None:
    """Tier 4: clickable, non-editable node whose description matches."""
    return _first(tree, lambda n: n.clickable and not n.editable and _desc_matches(n, target))


def find_fallback(tree: UiNode, target: str) -> UiNode | None:
    """Tier 5: any clickable node (editable too) matching text or description."""
    return _first(tree, lambda n: n.clickable and (_text_matches(n, target) or _desc_matches(n, target)))


def resolve_click(tree: UiNode, proposal: ActionProposal) -> tuple[UiNode | None, int]:
    """Run the tiers in priority order. Returns (node, tier) or (None, 0)."""
    target_text = proposal.target_text or ""

    if proposal.target_id:
        node = find_by_id(tree, proposal.target_id, target_text)
        if node is not None:
            return node, TIER_ID

    if not target_text.strip():
        return None, 0

    for tier, finder in (
        (TIER_OWN_TEXT, find_by_own_text),
        (TIER_CHILD_TEXT, find_by_child_text),
        (TIER_DESCRIPTION, find_by_description),
        (TIER_FALLBACK, find_fallback),
    ):
        node = finder(tree, target_text)
        if node is not None:
            return node, tier
    return None, 0


# ---------------------------------------------------------------------------
# TYPE / SCROLL targets
# ---------------------------------------------------------------------------


def find_editable(tree: UiNode, target_text: str | None, target_id: str | None = None) -> UiNode | None:
    """Editable node whose text, hint or identifier matches the target.

    With neither target given, the first editable node is returned.
    """
    target = (target_text or "").strip()
    if not target and not target_id:
        return _first(tree, lambda n: n.editable)

    def match(node: UiNode) -> bool:
        if not node.editable:
            return False
        if target and (
            _contains(node.text, target)
            or _contains(node.hint_text, target)
            or _contains(node.element_id, target)
        ):
            return True
        return bool(target_id) and _contains(node.element_id, target_id)

    return _first(tree, match)


def find_scrollable(tree: UiNode) -> UiNode | None:
    return _first(tree, lambda n: n.scrollable)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _describe(node: UiNode) -> str:
    return node.element_id or node.text or node.description or node.class_name or "?"


def _click(device, tree: UiNode, proposal: ActionProposal) -> bool:
    node, tier = resolve_click(tree, proposal)
    if node is None:
        _log(f"CLICK: no tier matched text={proposal.target_text!r} id={proposal.target_id!r}")
        return False
    _log(f"CLICK: tier {tier} matched '{_describe(node)}'")
    return bool(device.tap(node))


def _type(device, tree: UiNode, proposal: ActionProposal) -> bool:
    node = find_editable(tree, proposal.target_text, proposal.target_id)
    if node is None:
        _log(f"TYPE: no editable node matches {proposal.target_text!r}")
        return False
    _log(f"TYPE: '{_describe(node)}' <- {len(proposal.input_text or '')} chars")
    return bool(device.set_text(node, proposal.input_text or ""))


def _scroll(device, tree: UiNode, proposal: ActionProposal) -> bool:
    node = find_scrollable(tree)
    if node is None:
        _log("SCROLL: no scrollable node on screen")
        return False
    up = (proposal.target_text or "").strip().upper() == "UP"
    return bool(device.scroll(node, SCROLL_BACKWARD if up else SCROLL_FORWARD))


def execute(device, snapshot: UiNode, proposal: ActionProposal) -> bool:
    """Perform the proposal on the device. Returns success; never raises."""
    try:
        if proposal.action_type is ActionType.DONE:
            return True
        if proposal.action_type is ActionType.CLICK:
            success = _click(device, snapshot, proposal)
        elif proposal.action_type is ActionType.TYPE:
            success = _type(device, snapshot, proposal)
        elif proposal.action_type is ActionType.SCROLL:
            success = _scroll(device, snapshot, proposal)
        elif proposal.action_type is ActionType.BACK:
            success = bool(device.global_back())
        elif proposal.action_type is ActionType.HOME:
            success = bool(device.global_home())
        else:
            _log(f"Unknown action type: {proposal.action_type}")
            success = False
    except Exception as exc:
        _log(f"{proposal.action_type.value} raised {type(exc).__name__}: {exc}")
        return False

    target = proposal.target_text or proposal.target_id or ""
    if success:
        _log(f"{proposal.action_type.value} -> {target!r} succeeded")
    else:
        _log(f"{proposal.action_type.value} -> {target!r} failed")
    return success
