"""Think-block splitter — separates <think> reasoning from the visible answer.

Fragments arrive with arbitrary boundaries, so a marker may be split across
two (or more) fragments. The splitter holds back the longest tail of the
buffer that could still grow into the marker it is looking for, and routes
everything else to the output for its current state.
"""

from __future__ import annotations

from dataclasses import dataclass

OPEN_MARKER = "<think>"
CLOSE_MARKER = "</think>"


@dataclass(frozen=True)
class SplitOutput:
    visible: str = ""
    reasoning: str = ""


def _partial_marker_length(buffer: str, marker: str) -> int:
    """Length of the longest buffer suffix that is a proper prefix of marker."""
    for size in range(min(len(buffer), len(marker) - 1), 0, -1):
        if marker.startswith(buffer[-size:]):
            return size
    return 0


class ThinkBlockSplitter:
    """Stateful splitter for one stream."""

    def __init__(self) -> None:
        self.in_reasoning = False
        self._pending = ""

    def feed(self, fragment: str) -> SplitOutput:
        buffer = self._pending + fragment
        self._pending = ""
        visible: list[str] = []
        reasoning: list[str] = []

        while buffer:
            marker = CLOSE_MARKER if self.in_reasoning else OPEN_MARKER
            target = reasoning if self.in_reasoning else visible
            pos = buffer.find(marker)
            if pos >= 0:
                target.append(buffer[:pos])
                buffer = buffer[pos + len(marker):]
                self.in_reasoning = not self.in_reasoning
                continue

            held = _partial_marker_length(buffer, marker)
            target.append(buffer[: len(buffer) - held])
            self._pending = buffer[len(buffer) - held:]
            break

        return SplitOutput(visible="".join(visible), reasoning="".join(reasoning))

    def flush(self) -> SplitOutput:
        """Release held text at end of stream.

        An unterminated reasoning span is flushed to reasoning.
        """
        pending, self._pending = self._pending, ""
        if self.in_reasoning:
            return SplitOutput(reasoning=pending)
        return SplitOutput(visible=pending)


def split_think_blocks(text: str) -> SplitOutput:
    """Split a complete text in one pass."""
    splitter = ThinkBlockSplitter()
    head = splitter.feed(text)
    tail = splitter.flush()
    return SplitOutput(
        visible=head.visible + tail.visible,
        reasoning=head.reasoning + tail.reasoning,
    )
