"""
Overlap Renderer Module

Merges the stored underlines of one paragraph into non-overlapping display
spans. The output always tiles ``[0, len(paragraph_text))`` exactly: covered
segments carry the ids of every underline over them, gaps come back as plain
spans with an empty id list.
"""

from collections.abc import Iterable, Iterator, Sequence
from typing import Protocol

from ..models.annotations import Span


class RangeLike(Protocol):
    id: int
    start_offset: int
    end_offset: int
    idea: str | None


def merge(paragraph_text: str, underlines: Iterable[RangeLike]) -> list[Span]:
    """
    Sweep-line merge of half-open underline ranges over a paragraph.

    Args:
        paragraph_text: Plain text of the paragraph being drawn
        underlines: Underlines of that paragraph, any order

    Returns:
        list[Span]: Spans in text order, covering the paragraph with no gaps
    """
    length = len(paragraph_text)
    if length == 0:
        return []

    # Clamp to the paragraph and drop anything that ends up empty
    ranges: list[tuple[int, int, RangeLike]] = []
    for underline in sorted(underlines, key=lambda u: u.start_offset):
        start = max(0, underline.start_offset)
        end = min(length, underline.end_offset)
        if start < end:
            ranges.append((start, end, underline))

    boundaries = {0, length}
    for start, end, _ in ranges:
        boundaries.add(start)
        boundaries.add(end)
    points = sorted(boundaries)

    spans: list[Span] = []
    active: list[tuple[int, int, RangeLike]] = []
    next_range = 0
    for seg_start, seg_end in zip(points, points[1:]):
        # Activate ranges starting at or before this segment, retire finished ones
        while next_range < len(ranges) and ranges[next_range][0] <= seg_start:
            active.append(ranges[next_range])
            next_range += 1
        active = [item for item in active if item[1] > seg_start]

        covering = [item[2] for item in active]
        ids = [u.id for u in covering]
        has_idea = any(bool(u.idea and u.idea.strip()) for u in covering)

        previous = spans[-1] if spans else None
        if (
            previous is not None
            and previous.underline_ids == ids
            and previous.has_idea == has_idea
            and previous.end == seg_start
        ):
            previous.end = seg_end
        else:
            spans.append(
                Span(start=seg_start, end=seg_end, underline_ids=ids, has_idea=has_idea)
            )

    return spans


def render_text(paragraph_text: str, spans: Sequence[Span]) -> Iterator[tuple[str, Span]]:
    """Yield each span with the paragraph substring it covers."""
    for span in spans:
        yield paragraph_text[span.start : span.end], span


class OverlapRenderer:
    """Object wrapper so callers can inject the renderer like other services."""

    def merge(self, paragraph_text: str, underlines: Iterable[RangeLike]) -> list[Span]:
        return merge(paragraph_text, underlines)
