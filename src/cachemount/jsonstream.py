"""
Parser for streams of concatenated JSON documents.

Some tools (``pnpm m ls --json`` in recursive workspaces) print several
JSON values one after another instead of a single array. The accepted
grammar is::

    stream   := ws (value ws)*
    ws       := (space | tab | newline | carriage return)*

where ``value`` is any JSON value. Values may also be directly adjacent
(``[1][2]``). Anything else between values is an error.
"""

from __future__ import annotations

import json
from typing import Any, Iterator

_WHITESPACE = " \t\n\r"


def iter_documents(text: str) -> Iterator[Any]:
    """Yield each top-level JSON value in ``text`` in order.

    Raises:
        json.JSONDecodeError: If a value is malformed or junk appears
            between values.
    """
    decoder = json.JSONDecoder()
    pos = 0
    end = len(text)
    while True:
        while pos < end and text[pos] in _WHITESPACE:
            pos += 1
        if pos >= end:
            return
        value, pos = decoder.raw_decode(text, pos)
        yield value


def parse_documents(text: str) -> list[Any]:
    """Parse every JSON value in a multi-document stream."""
    return list(iter_documents(text))
