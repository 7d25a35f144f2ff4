"""
Parsing of model output into rewrite candidates.

Model output is free-form text that should contain JSON. The payload is
located by trying, in order: the whole text, a fenced ```json block, and the
first bracketed span. Each item is then checked against a strict schema;
missing or mistyped fields reject the item instead of raising mid-run.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any

from ..core.errors import ResponseParseError


class SchemaError(ValueError):
    """A parsed item is missing a required field or has the wrong type."""


@dataclass(frozen=True)
class RewriteCandidate:
    """One rewritten document as returned by the model, before acceptance checks."""

    title: str
    content: str
    summary: str
    category: str
    tags: list[str]
    author: str | None = None
    confidence: float | None = None
    index: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RewriteCandidate":
        """Build a candidate from a decoded JSON object.

        Raises:
            SchemaError: If a required field is missing or mistyped
        """
        if not isinstance(payload, dict):
            raise SchemaError(f"expected an object, got {type(payload).__name__}")

        values: dict[str, str] = {}
        for key in ("title", "content", "summary"):
            value = payload.get(key)
            if not isinstance(value, str) or not value.strip():
                raise SchemaError(f"field '{key}' must be a non-empty string")
            values[key] = value.strip()

        category = payload.get("category")
        if not isinstance(category, str):
            raise SchemaError("field 'category' must be a string")

        tags = payload.get("tags")
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise SchemaError("field 'tags' must be a list of strings")

        author = payload.get("author")
        confidence = payload.get("confidenceScore")
        index = payload.get("index")
        return cls(
            title=values["title"],
            content=values["content"],
            summary=values["summary"],
            category=category.strip(),
            tags=[tag.strip() for tag in tags if tag.strip()],
            author=author.strip() if isinstance(author, str) and author.strip() else None,
            confidence=min(max(float(confidence), 0.0), 1.0)
            if isinstance(confidence, (int, float)) and not isinstance(confidence, bool)
            else None,
            index=index if isinstance(index, int) and not isinstance(index, bool) else None,
        )


def parse_json_payload(content: str, expect: type = dict) -> Any:
    """Locate and decode a JSON object or array inside model output.

    Args:
        content: Raw model text
        expect: ``dict`` for a single object, ``list`` for an array

    Raises:
        ResponseParseError: If no decodable payload of the expected type is found
    """
    if not content or not content.strip():
        raise ResponseParseError("Empty model response")

    candidates = [content.strip()]
    fenced = _extract_fenced_json(content)
    if fenced:
        candidates.append(fenced)
    span = _extract_bracketed(content, "[" if expect is list else "{")
    if span:
        candidates.append(span)

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, expect):
            return value
    kind = "array" if expect is list else "object"
    raise ResponseParseError(f"No JSON {kind} found in model response")


def parse_single_response(content: str) -> RewriteCandidate:
    """Parse an individual-call response.

    Raises:
        ResponseParseError: If no JSON object is found
        SchemaError: If the object fails the schema
    """
    return RewriteCandidate.from_payload(parse_json_payload(content, dict))


def parse_batch_response(content: str, size: int) -> dict[int, RewriteCandidate | SchemaError]:
    """Parse a batch response into candidates keyed by input index.

    Items with a missing or out-of-range ``index`` are ignored; the first item
    for an index wins. Items failing the schema map to their ``SchemaError``.

    Raises:
        ResponseParseError: If no JSON array is found
    """
    items = parse_json_payload(content, list)
    results: dict[int, RewriteCandidate | SchemaError] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        index = item.get("index")
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < size:
            continue
        if index in results:
            continue
        try:
            results[index] = RewriteCandidate.from_payload(item)
        except SchemaError as exc:
            results[index] = exc
    return results


def _extract_fenced_json(content: str) -> str | None:
    lines = content.splitlines()
    start_idx = None
    for idx, line in enumerate(lines):
        if line.strip().startswith("```") and "json" in line.lower():
            start_idx = idx + 1
            break
    if start_idx is None:
        return None
    for idx in range(start_idx, len(lines)):
        if lines[idx].strip().startswith("```"):
            snippet = "\n".join(lines[start_idx:idx]).strip()
            return snippet or None
    return None


def _extract_bracketed(content: str, opener: str) -> str | None:
    closer = "]" if opener == "[" else "}"
    start = content.find(opener)
    end = content.rfind(closer)
    if start == -1 or end <= start:
        return None
    return content[start : end + 1]
