"""Prompt loading and rendering for the rewrite calls."""

from __future__ import annotations

from functools import lru_cache
import json
from pathlib import Path

from ..core.types import RawDocument


_PROMPT_DIR = Path(__file__).resolve().parent.parent / "prompts"


@lru_cache(maxsize=None)
def _load_template(name: str) -> str:
    path = _PROMPT_DIR / f"{name}.md"
    return path.read_text(encoding="utf-8").strip()


def _render_template(name: str, **values: str) -> str:
    template = _load_template(name)
    return template.format(**values)


def build_batch_prompt(docs: list[RawDocument], max_chars: int = 3000) -> str:
    """Prompt asking for a JSON array, one object per document keyed by ``index``."""
    blocks = []
    for index, doc in enumerate(docs):
        blocks.append(
            f"ARTICLE {index}:\n"
            f"Title: {doc.title}\n"
            f"Content: {doc.body[:max_chars]}\n"
            f"Author: {doc.author}\n"
            f"Category: {doc.category}\n"
            f"Image URLs: {json.dumps(list(doc.image_urls))}"
        )
    return _render_template(
        "batch_rewrite",
        count=str(len(docs)),
        articles="\n\n---\n\n".join(blocks),
    )


def build_single_prompt(doc: RawDocument, max_chars: int = 3000) -> str:
    return _render_template(
        "single_rewrite",
        title=doc.title,
        content=doc.body[:max_chars],
        author=doc.author,
        category=doc.category,
        image_urls=json.dumps(list(doc.image_urls)),
    )
