"""Tests for locating and validating JSON in model output."""

from __future__ import annotations

import json

import pytest

from smart_news.core.errors import ResponseParseError
from smart_news.llm.response import (
    RewriteCandidate,
    SchemaError,
    parse_batch_response,
    parse_json_payload,
    parse_single_response,
)


def _item(index=None, **overrides):
    item = {
        "title": "Parliament passes budget",
        "content": "Body text",
        "summary": "Summary text",
        "category": "Politics",
        "tags": ["budget", "parliament", "ghana"],
    }
    if index is not None:
        item["index"] = index
    item.update(overrides)
    return item


def test_parse_json_payload_accepts_fenced_block():
    content = "Here you go:\n```json\n" + json.dumps(_item()) + "\n```\nThanks"
    assert parse_json_payload(content)["title"] == "Parliament passes budget"


def test_parse_json_payload_accepts_bracketed_span():
    content = "Result: " + json.dumps([_item(0)]) + " end"
    assert parse_json_payload(content, list)[0]["index"] == 0


def test_parse_json_payload_rejects_wrong_shape():
    with pytest.raises(ResponseParseError):
        parse_json_payload('{"title": "no array here"}', list)
    with pytest.raises(ResponseParseError):
        parse_json_payload("   ")


def test_candidate_schema_rejects_missing_and_mistyped_fields():
    with pytest.raises(SchemaError, match="content"):
        RewriteCandidate.from_payload(_item(content=""))
    with pytest.raises(SchemaError, match="tags"):
        RewriteCandidate.from_payload(_item(tags="budget, ghana"))
    with pytest.raises(SchemaError):
        RewriteCandidate.from_payload(["not", "an", "object"])


def test_candidate_optional_fields():
    candidate = parse_single_response(json.dumps(_item(author="  ", confidenceScore=0.9)))
    assert candidate.author is None
    assert candidate.confidence == 0.9
    assert parse_single_response(json.dumps(_item(confidenceScore=True))).confidence is None
    assert parse_single_response(json.dumps(_item(confidenceScore=90))).confidence == 1.0


def test_parse_batch_response_maps_items_by_index():
    payload = [
        _item(1, title="Second story title"),
        _item(0),
        _item(0, title="Ignored duplicate index"),
        _item(7),
        _item(None),
        _item(2, summary=42),
        "garbage",
    ]

    results = parse_batch_response(json.dumps(payload), size=3)

    assert set(results) == {0, 1, 2}
    assert results[0].title == "Parliament passes budget"
    assert results[1].title == "Second story title"
    assert isinstance(results[2], SchemaError)
