from json_utils import parse_json_object, strip_markdown_json


def test_plain_object():
    assert parse_json_object('{"a": 1}') == {"a": 1}


def test_fenced_object():
    text = '```json\n{"summary": "ok"}\n```'
    assert strip_markdown_json(text) == '{"summary": "ok"}'
    assert parse_json_object(text) == {"summary": "ok"}


def test_object_with_surrounding_chatter():
    text = 'Here is the analysis: {"stopLoss": 10} hope it helps'
    assert parse_json_object(text) == {"stopLoss": 10}


def test_non_objects_yield_none():
    assert parse_json_object("") is None
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("not json at all") is None
