import re

import pytest

from insights.core.errors import BadFilter
from insights.services.filter_translator import is_pattern_literal, parse_filter, translate


def test_tree_without_patterns_passes_through_unchanged():
    tree = {
        "status": "open",
        "amount": {"$gte": 10, "$lt": 99.5},
        "active": True,
        "deletedAt": None,
        "$or": [{"region": "east"}, {"tags": ["a", "b/c", "/"]}],
    }
    assert translate(tree) == tree


def test_translate_returns_a_new_tree():
    tree = {"region": "/^east/", "nested": {"x": ["/a/"]}}
    out = translate(tree)
    assert tree == {"region": "/^east/", "nested": {"x": ["/a/"]}}
    assert out is not tree


def test_slash_delimited_strings_become_case_insensitive_patterns():
    out = translate({"region": "/^east/", "$or": [{"name": "/smith/"}, {"name": "plain"}]})

    region = out["region"]
    assert isinstance(region, re.Pattern)
    assert region.pattern == "^east"
    assert region.flags & re.IGNORECASE
    assert region.search("EASTERN")
    assert not region.search("north-east")

    assert out["$or"][0]["name"].search("Mr SMITH")
    assert out["$or"][1]["name"] == "plain"


def test_keys_are_never_translated():
    out = translate({"/key/": 1})
    assert out == {"/key/": 1}


def test_translate_is_idempotent_on_compiled_patterns():
    once = translate({"a": "/x+/", "b": ["/y/"]})
    twice = translate(once)
    assert twice["a"] is once["a"]
    assert twice["b"][0] is once["b"][0]


def test_empty_body_matches_everything():
    out = translate({"name": "//"})
    assert out["name"].search("anything")


@pytest.mark.parametrize(
    "value,expected",
    [("/a/", True), ("//", True), ("/", False), ("a/b/", False), ("/a", False), ("/a\nb/", False), (5, False)],
)
def test_is_pattern_literal(value, expected):
    assert is_pattern_literal(value) is expected


def test_malformed_pattern_is_a_bad_filter():
    with pytest.raises(BadFilter):
        translate({"region": "/([unclosed/"})


def test_parse_filter_handles_blank_and_json_text():
    assert parse_filter(None) == {}
    assert parse_filter("   ") == {}
    out = parse_filter('{"region": "/^east/", "amount": {"$gt": 5}}')
    assert out["amount"] == {"$gt": 5}
    assert out["region"].match("East")


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
def test_parse_filter_rejects_malformed_or_non_object_json(raw):
    with pytest.raises(BadFilter):
        parse_filter(raw)
