"""Completion marker detection for agent output."""

from __future__ import annotations

COMPLETION_MARKER = "<promise>COMPLETE</promise>"
"""Tag the agent prints once the whole spec is done."""


def contains_completion_marker(text: str) -> bool:
    """Return True when *text* contains the completion marker (case-sensitive)."""
    if not text:
        return False
    return COMPLETION_MARKER in text


class CompletionTracker:
    """Accumulates assistant text for one iteration and watches for the marker.

    Each text block is appended to an owned buffer and only the region that
    could contain a new occurrence is rescanned, so scanning stays linear in
    the total text length. Once seen, completion stays observed.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._tail = ""
        self._complete = False

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def feed(self, text: str) -> bool:
        """Append one text block and return the (monotonic) completion flag."""
        if not text:
            return self._complete
        self._chunks.append(text)
        if not self._complete:
            window = self._tail + text
            if contains_completion_marker(window):
                self._complete = True
            keep = len(COMPLETION_MARKER) - 1
            self._tail = window[-keep:] if keep > 0 else ""
        return self._complete
