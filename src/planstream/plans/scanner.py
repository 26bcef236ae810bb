"""
Brace/string-aware scanner for JSON object literals inside free text.

The scanner does not parse JSON. It balances braces while tracking whether
it is inside a string literal, so that ``{"a": "}{"}`` is found whole. The
caller decodes the isolated span and decides whether it is useful.

Rules:
  - Scanning is strictly left to right from *start*.
  - A backslash escapes the next character, wherever it appears.
  - An unescaped ``"`` toggles string context, inside or outside an object,
    so ``say "{" then {"a": 1}`` finds only the second brace. Prose with an
    unbalanced double quote before an object hides that object.
  - A ``}`` with no open object is ignored.
  - No match is returned until the outermost object closes, which makes the
    scanner safe to call on a buffer that is still growing.

``find_unquoted`` applies the same string rules to a plain substring search,
so a caller can tell a closing fence from backticks inside a JSON string.
"""

from __future__ import annotations

from collections.abc import Iterator


def find_json_object(text: str, start: int = 0) -> tuple[int, int] | None:
    """
    Return the ``[start, end)`` span of the first balanced ``{...}`` at or after *start*.

    Returns None when no object opens, or when the first object that opens
    has not closed by the end of *text*.
    """
    depth = 0
    in_string = False
    escaped = False
    obj_start = -1

    for i in range(max(start, 0), len(text)):
        ch = text[i]

        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif ch == "{":
            if depth == 0:
                obj_start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                return obj_start, i + 1

    return None


def find_unquoted(text: str, needle: str, start: int = 0) -> int:
    """Index of the first *needle* at or after *start* outside any string literal, or -1."""
    in_string = False
    escaped = False

    for i in range(max(start, 0), len(text)):
        ch = text[i]

        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            in_string = not in_string
        elif not in_string and text.startswith(needle, i):
            return i

    return -1


def iter_json_objects(text: str, start: int = 0) -> Iterator[tuple[int, int]]:
    """Yield consecutive non-overlapping object spans, resuming after each match."""
    pos = start
    while True:
        span = find_json_object(text, pos)
        if span is None:
            return
        yield span
        pos = span[1]
