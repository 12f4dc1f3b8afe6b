"""Parser for raw generation output.

The backend is a best-effort text generator with no guaranteed schema, so
parsing runs in two stages:

1. Structured: the first ``{...}`` block is decoded as JSON and must carry a
   summary. Chapters need both a time label and a title; others are dropped.
2. Fallback: the summary is a bounded prefix of the raw text, and chapters are
   scraped from ``time - title`` lines.

The returned ``parse_outcome`` tells callers which stage produced the result.
"""

from __future__ import annotations

import json
import re

from tubetldr.models.generation import Chapter, GenerationResult, ParseOutcome

FALLBACK_SUMMARY_CHARS = 200
FALLBACK_MIN_RAW_CHARS = 50
MAX_TITLE_CHARS = 100

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_CODE_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*$", re.MULTILINE)
_CHAPTER_LINE_RE = re.compile(
    r"^[ \t]*(?:[-*•][ \t]*|\d+[.)][ \t]+)?"  # optional bullet or list number
    r"\[?(\d{1,2}:\d{2}(?::\d{2})?)\]?"  # time label
    r"[ \t]*(?:[-–—:][ \t]*|[ \t]+)"  # separator
    r"(.+?)[ \t]*$",
    re.MULTILINE,
)


def parse_generation_output(raw: str, max_chapters: int) -> GenerationResult:
    """Parse raw backend text, structured first, then heuristically."""
    structured = parse_structured(raw, max_chapters)
    if structured is not None:
        return structured
    return parse_fallback(raw, max_chapters)


def parse_structured(raw: str, max_chapters: int) -> GenerationResult | None:
    """Return a structured result, or ``None`` if no usable JSON summary is present."""
    match = _JSON_BLOCK_RE.search(raw)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    summary = data.get("summary", data.get("tldr"))
    if not isinstance(summary, str) or not summary.strip():
        return None

    chapters: list[Chapter] = []
    raw_chapters = data.get("chapters")
    if isinstance(raw_chapters, list):
        for item in raw_chapters:
            chapter = _chapter_from_item(item)
            if chapter is not None:
                chapters.append(chapter)
            if len(chapters) >= max_chapters:
                break

    return GenerationResult(
        summary=summary.strip(),
        chapters=chapters,
        parse_outcome=ParseOutcome.STRUCTURED,
    )


def _chapter_from_item(item: object) -> Chapter | None:
    if not isinstance(item, dict):
        return None
    time_label = item.get("time")
    title = item.get("title")
    if not isinstance(time_label, str) or not isinstance(title, str):
        return None
    time_label, title = time_label.strip(), title.strip()
    if not time_label or not title:
        return None
    return Chapter(time=time_label, title=title[:MAX_TITLE_CHARS])


def parse_fallback(raw: str, max_chapters: int) -> GenerationResult:
    """Best-effort scrape of free text."""
    text = _CODE_FENCE_RE.sub("", raw).strip()

    summary: str | None = None
    if len(text) > FALLBACK_MIN_RAW_CHARS:
        summary = text[:FALLBACK_SUMMARY_CHARS].strip() + "..."

    chapters: list[Chapter] = []
    for match in _CHAPTER_LINE_RE.finditer(text):
        title = match.group(2).strip().strip('",')
        if not title:
            continue
        chapters.append(Chapter(time=match.group(1), title=title[:MAX_TITLE_CHARS]))
        if len(chapters) >= max_chapters:
            break

    return GenerationResult(
        summary=summary,
        chapters=chapters,
        parse_outcome=ParseOutcome.FALLBACK,
    )
