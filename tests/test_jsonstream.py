"""Tests for the multi-document JSON stream parser."""

from __future__ import annotations

import json

import pytest

from cachemount.jsonstream import iter_documents, parse_documents


class TestParseDocuments:
    """Tests for parse_documents()."""

    def test_newline_separated_arrays(self) -> None:
        """Each top-level array is a separate document."""
        text = '[{"path": "/a"}]\n[{"path": "/b"}, {"path": "/c"}]\n'
        assert parse_documents(text) == [
            [{"path": "/a"}],
            [{"path": "/b"}, {"path": "/c"}],
        ]

    def test_adjacent_values(self) -> None:
        """Values need no separator."""
        assert parse_documents('[1][2]{"a": 3}') == [[1], [2], {"a": 3}]

    def test_pretty_printed_documents(self) -> None:
        """Documents may span several lines."""
        text = "[\n  {\n    \"name\": \"x\"\n  }\n]\n\n[\n]\n"
        assert parse_documents(text) == [[{"name": "x"}], []]

    def test_empty_stream(self) -> None:
        """Whitespace only yields nothing."""
        assert parse_documents(" \n\t\r\n") == []

    def test_junk_between_documents(self) -> None:
        """Anything but whitespace between values is an error."""
        with pytest.raises(json.JSONDecodeError):
            parse_documents("[1] , [2]")

    def test_truncated_document(self) -> None:
        """A document cut short is an error."""
        with pytest.raises(json.JSONDecodeError):
            parse_documents('[{"path": "/a"}')

    def test_iter_is_lazy(self) -> None:
        """Documents before a malformed one are still produced."""
        docs = iter_documents("[1]\n[2]\n{oops")
        assert next(docs) == [1]
        assert next(docs) == [2]
        with pytest.raises(json.JSONDecodeError):
            next(docs)
