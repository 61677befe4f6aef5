"""Unit tests for tolerant JSON extraction from LLM responses."""

from lifegraph.utils.json_parser import find_first_json_object, parse_json_object


def test_parses_object_wrapped_in_prose_and_fences():
    response = 'Here you go:\n```json\n{"people": [{"name": "Father"}]}\n```\nAnything else?'
    assert parse_json_object(response) == {"people": [{"name": "Father"}]}


def test_braces_inside_strings_do_not_end_the_object():
    response = '{"context": "drew a } and a {", "nested": {"a": 1}} trailing {junk'
    assert parse_json_object(response) == {"context": "drew a } and a {", "nested": {"a": 1}}


def test_escaped_quotes_inside_strings():
    response = r'{"context": "he said \"}\" loudly"}'
    assert parse_json_object(response) == {"context": 'he said "}" loudly'}


def test_returns_first_of_several_objects():
    assert find_first_json_object('{"a": 1} {"b": 2}') == '{"a": 1}'


def test_unbalanced_object_returns_none():
    assert find_first_json_object('{"a": {"b": 1}') is None
    assert parse_json_object('{"a": {"b": 1}') is None


def test_invalid_json_returns_none():
    assert parse_json_object("{'single': 'quotes'}") is None


def test_no_object_returns_none():
    assert parse_json_object("I could not find any entities.") is None
    assert parse_json_object("") is None
    assert parse_json_object(None) is None
