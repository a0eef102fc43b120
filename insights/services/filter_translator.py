"""Translate user-supplied filter JSON into a MongoDB query predicate.

Wire convention: any string value shaped like ``/body/`` is a case-insensitive
regular expression on ``body``. Nothing else is rewritten; keys are never
touched. The result is safe to hand to ``pymongo`` because compiled patterns
encode as BSON regular expressions.
"""
from __future__ import annotations

import json
import re
from typing import Dict, List, Pattern, Union

from insights.core.errors import BadFilter

FilterTree = Union[
    None,
    bool,
    int,
    float,
    str,
    Pattern,
    List["FilterTree"],
    Dict[str, "FilterTree"],
]

# "." does not cross newlines, so multi-line strings stay literal
_PATTERN_LITERAL = re.compile(r"/.*/")


def is_pattern_literal(value) -> bool:
    return isinstance(value, str) and _PATTERN_LITERAL.fullmatch(value) is not None


def _compile(literal: str) -> Pattern:
    body = literal[1:-1]
    try:
        return re.compile(body, re.IGNORECASE)
    except re.error as e:
        raise BadFilter("Invalid filter format", f"bad pattern {literal!r}: {e}")


def translate(tree: FilterTree) -> FilterTree:
    """Return a new tree with every ``/pattern/`` string compiled."""
    if isinstance(tree, dict):
        return {key: translate(value) for key, value in tree.items()}
    if isinstance(tree, list):
        return [translate(item) for item in tree]
    if isinstance(tree, str):
        return _compile(tree) if is_pattern_literal(tree) else tree
    # None, bool, numbers and already-compiled patterns
    return tree


def parse_filter(raw) -> Dict[str, FilterTree]:
    """Parse filter text from a request and translate it.

    Missing or blank text means "match everything".
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise BadFilter("Invalid filter format", str(e))
    if not isinstance(raw, dict):
        raise BadFilter("Invalid filter format", "filter must be a JSON object")
    return translate(raw)
