import pytest

from mcpserver.pagination import decode_cursor, encode_cursor, paginate
from mcpserver.types import Resource, Tool


def _tools(*names):
    return [Tool(name) for name in names]


def test_encode_cursor_known_value():
    assert encode_cursor("tool654") == "dG9vbDY1NA=="
    assert decode_cursor("dG9vbDY1NA==") == "tool654"


def test_cursor_round_trip():
    for name in ["My Resource", "", "ünïcode"]:
        assert decode_cursor(encode_cursor(name)) == name


def test_invalid_cursor_raises():
    with pytest.raises(ValueError):
        decode_cursor("not base64!")


def test_cursor_past_last_resource():
    resources = [Resource(uri="resource://testresource", name="My Resource")]
    page, next_cursor = paginate(resources, encode_cursor("My Resource"), 2)
    assert page == []
    assert next_cursor == ""


def test_walk_pages():
    tools = _tools("a", "b", "c", "d")
    page, cursor = paginate(tools, "", 2)
    assert [t.name for t in page] == ["a", "b"]
    assert cursor == encode_cursor("b")
    page, cursor = paginate(tools, cursor, 2)
    assert [t.name for t in page] == ["c", "d"]
    assert cursor == encode_cursor("d")
    page, cursor = paginate(tools, cursor, 2)
    assert page == []
    assert cursor == ""


def test_short_last_page_has_no_cursor():
    page, cursor = paginate(_tools("a", "b", "c"), encode_cursor("b"), 2)
    assert [t.name for t in page] == ["c"]
    assert cursor == ""


def test_no_limit_returns_everything():
    tools = _tools("x", "y", "z")
    page, cursor = paginate(tools, None, None)
    assert page == tools
    assert cursor == ""


def test_cursor_between_names():
    page, _ = paginate(_tools("tool1", "tool3", "tool5"), encode_cursor("tool2"), None)
    assert [t.name for t in page] == ["tool3", "tool5"]


def test_bad_cursor_propagates():
    with pytest.raises(ValueError):
        paginate(_tools("a"), "%%%", 1)


def test_negative_limit_rejected():
    with pytest.raises(ValueError):
        paginate(_tools("a"), None, -1)