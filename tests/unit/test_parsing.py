import json

import pytest

from dafang.ai.parsing import extract_object, parse_decision
from dafang.errors import MalformedProposal
from dafang.models.api import MoveAction, PlaceAction, RemoveAction


def test_parses_each_action_kind():
    assert parse_decision('{"action": "placing", "position": [1, 1]}') == PlaceAction(position=(1, 1))
    assert parse_decision('{"action": "removing", "position": [5, 0]}') == RemoveAction(position=(5, 0))
    move = parse_decision('{"action": "moving", "position": [2, 3], "newPosition": [2, 4]}')
    assert move == MoveAction(position=(2, 3), new_position=(2, 4))


def test_surrounding_prose_is_ignored():
    text = 'I will take the corner point. {"action": "placing", "position": [4, 4]} Done.'
    assert extract_object(text) == '{"action": "placing", "position": [4, 4]}'
    assert parse_decision(text).position == (4, 4)


def test_unknown_fields_are_ignored():
    action = parse_decision('{"action": "placing", "position": [0, 5], "why": "edge"}')
    assert action == PlaceAction(position=(0, 5))


@pytest.mark.parametrize(
    "text",
    [
        "",
        "pass",
        "{oops}",
        '["placing", [1, 1]]',
        '{"position": [1, 1]}',
        '{"action": "jumping", "position": [1, 1]}',
        '{"action": "placing", "position": [6, 0]}',
        '{"action": "placing", "position": [1]}',
        '{"action": "placing", "position": ["1", "1"]}',
        '{"action": "moving", "position": [1, 1]}',
    ],
)
def test_malformed_replies(text):
    with pytest.raises(MalformedProposal) as exc:
        parse_decision(text)
    assert exc.value.content == text


def test_wire_form_uses_new_position_alias():
    move = MoveAction(position=(0, 0), new_position=(0, 1))
    assert move.wire() == {"action": "moving", "position": [0, 0], "newPosition": [0, 1]}
    assert parse_decision(json.dumps(move.wire())) == move
