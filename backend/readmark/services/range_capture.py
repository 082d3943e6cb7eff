"""
Range Capture Module

Turns a raw text-selection event, as reported by a reader client, into a
paragraph-relative ``(paragraph_index, start_offset, end_offset, text)``
descriptor awaiting user confirmation.

Selections are addressed by paragraph index plus character offsets into that
paragraph's plain text. Selections spanning more than one paragraph are not
supported and are ignored.
"""

import logging
from dataclasses import dataclass

from ..models.annotations import BookType, UnderlineCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionEvent:
    """
    A selection as reported by the client.

    Fields:
        selected_text: The text the user selected
        anchor_paragraph_index: Paragraph containing the selection start
        focus_paragraph_index: Paragraph containing the selection end
        anchor_offset: Offset of the live range inside the paragraph, when the
                       client platform exposes one
    """

    selected_text: str
    anchor_paragraph_index: int
    focus_paragraph_index: int | None = None
    anchor_offset: int | None = None


@dataclass(frozen=True)
class PendingUnderline:
    """A captured selection awaiting confirmation; passed explicitly, never stored globally"""

    paragraph_index: int
    start_offset: int
    end_offset: int
    text: str
    from_hint: bool = False

    def to_create_payload(self, book_type: BookType, book_id: int) -> UnderlineCreate:
        return UnderlineCreate(
            book_type=book_type,
            book_id=book_id,
            paragraph_index=self.paragraph_index,
            start_offset=self.start_offset,
            end_offset=self.end_offset,
            text=self.text,
        )


class RangeCapturer:
    """Maps selection events onto paragraph-relative offsets."""

    def capture(
        self, event: SelectionEvent, paragraph_text: str
    ) -> PendingUnderline | None:
        """
        Capture a selection inside one paragraph.

        Args:
            event: The client selection event
            paragraph_text: Plain text of the anchor paragraph

        Returns:
            PendingUnderline, or None when the selection is empty, spans
            paragraphs, or cannot be located in the paragraph text.
        """
        selected = event.selected_text or ""
        if not selected.strip():
            return None

        if event.anchor_paragraph_index < 0:
            return None

        if (
            event.focus_paragraph_index is not None
            and event.focus_paragraph_index != event.anchor_paragraph_index
        ):
            logger.debug(
                "Ignoring cross-paragraph selection %s -> %s",
                event.anchor_paragraph_index,
                event.focus_paragraph_index,
            )
            return None

        start = self._locate(selected, paragraph_text, event.anchor_offset)
        if start is None:
            logger.debug(
                "Selection not found in paragraph %s", event.anchor_paragraph_index
            )
            return None

        return PendingUnderline(
            paragraph_index=event.anchor_paragraph_index,
            start_offset=start,
            end_offset=start + len(selected),
            text=selected,
            from_hint=start == event.anchor_offset,
        )

    @staticmethod
    def _locate(selected: str, paragraph_text: str, hint: int | None) -> int | None:
        # The live range position wins when it agrees with the paragraph text;
        # otherwise fall back to the first verbatim occurrence.
        if hint is not None and 0 <= hint <= len(paragraph_text) - len(selected):
            if paragraph_text[hint : hint + len(selected)] == selected:
                return hint
        index = paragraph_text.find(selected)
        return index if index >= 0 else None


def capture_selection(
    paragraph_text: str,
    selected_text: str,
    paragraph_index: int,
    anchor_offset: int | None = None,
) -> PendingUnderline | None:
    """Convenience wrapper for single-paragraph selections."""
    return RangeCapturer().capture(
        SelectionEvent(
            selected_text=selected_text,
            anchor_paragraph_index=paragraph_index,
            focus_paragraph_index=paragraph_index,
            anchor_offset=anchor_offset,
        ),
        paragraph_text,
    )
