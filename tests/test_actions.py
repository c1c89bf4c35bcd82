import pytest

from droid_agent.actions import ActionProposal, ActionType, ProposalParseError, parse_proposal, strip_code_fence

PLAIN = '{"action_type": "CLICK", "target_text": "Settings", "reasoning": "Open the Settings app"}'


def test_fenced_reply_decodes_like_plain_reply():
    fenced = f"```json\n{PLAIN}\n```"
    bare_fence = f"```\n{PLAIN}\n```"

    assert parse_proposal(fenced) == parse_proposal(PLAIN)
    assert parse_proposal(bare_fence) == parse_proposal(PLAIN)


def test_fence_with_surrounding_prose():
    text = f"Here is my decision:\n```json\n{PLAIN}\n```\nGood luck."

    assert strip_code_fence(text) == PLAIN


def test_unterminated_fence_is_stripped():
    assert strip_code_fence(f"```json\n{PLAIN}") == PLAIN


def test_fenced_snippet_inside_plain_reply_is_kept():
    text = '{"action_type": "DONE", "reasoning": "typed ```ls``` as asked"}'

    proposal = parse_proposal(text)

    assert proposal.action_type is ActionType.DONE
    assert proposal.reasoning == "typed ```ls``` as asked"


def test_fenced_reply_quoting_a_fence_keeps_whole_body():
    body = '{"action_type": "DONE", "reasoning": "ran ```ls```"}'

    assert strip_code_fence(f"```json\n{body}\n```") == body


def test_action_type_is_case_insensitive():
    proposal = parse_proposal('{"action_type": "back", "reasoning": "wrong screen"}')

    assert proposal.action_type is ActionType.BACK
    assert proposal.target_text is None


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "not json",
        "[1, 2]",
        '{"target_text": "OK"}',
        '{"action_type": "LONG_PRESS"}',
        '{"action_type": "TYPE", "target_text": "Search"}',
        '{"action_type": "CLICK", "target_text": ["a"]}',
    ],
)
def test_invalid_replies_raise(text):
    with pytest.raises(ProposalParseError):
        parse_proposal(text)


def test_blank_fields_become_none_and_numbers_become_strings():
    proposal = parse_proposal('{"action_type": "TYPE", "target_text": " ", "input_text": 42}')

    assert proposal.target_text is None
    assert proposal.input_text == "42"


def test_history_entry_format():
    proposal = ActionProposal(
        action_type=ActionType.TYPE,
        target_text="Search",
        target_id="search_src_text",
        input_text="weather",
        reasoning="Type the query",
    )

    assert proposal.to_history_entry(3, True) == (
        "Step 3 [SUCCESS]: TYPE on 'Search' (id 'search_src_text') with text 'weather' - Type the query"
    )
    assert ActionProposal(ActionType.BACK).to_history_entry(4, False) == "Step 4 [FAILED]: BACK"


def test_is_done_and_to_dict():
    done = ActionProposal(ActionType.DONE, reasoning="Wi-Fi is on")

    assert done.is_done()
    assert done.to_dict()["action_type"] == "DONE"
    assert not ActionProposal(ActionType.HOME).is_done()
