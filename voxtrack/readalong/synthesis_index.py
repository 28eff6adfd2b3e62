"""
Synthesis Index Module

Time-ordered store of word boundary events for one session. Answers "which
word is playing now" while several chunks may overlap on the timeline, and
never lets a stale, earlier chunk pull the highlight backwards.
"""

from bisect import bisect_right
from typing import Iterator, List, Optional

from voxtrack.readalong.protocol import TICKS_PER_SECOND, WordBoundaryEvent

# How far before the current time to look for overlapping candidates
CANDIDATE_LOOKBACK_TICKS = TICKS_PER_SECOND


class SynthesisIndex:
    """
    Ordered word boundary events plus the chunk the highlight last came from.

    Events are kept sorted by audio offset. The sort is stable, so events with
    equal offsets stay in arrival order.
    """

    def __init__(self):
        self._events: List[WordBoundaryEvent] = []
        self._offsets: List[int] = []
        self.last_chunk_index = -1

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[WordBoundaryEvent]:
        return iter(list(self._events))

    def add(self, events: List[WordBoundaryEvent]) -> None:
        """Merge events and re-sort the whole sequence by offset."""
        if not events:
            return
        self._events.extend(events)
        self._events.sort(key=lambda e: e.offset)
        self._offsets = [e.offset for e in self._events]

    def find_active(self, seconds: float) -> Optional[WordBoundaryEvent]:
        """
        Find the event playing at the given time.

        All events covering the time are candidates, across chunks. A
        candidate from the chunk that won last time is kept; otherwise the
        highest chunk at or after it wins. If only earlier chunks cover the
        time, nothing is returned.

        Args:
            seconds: Playback time on the absolute timeline

        Returns:
            The winning event, or None
        """
        ticks = seconds * TICKS_PER_SECOND
        candidates = self._covering(ticks)
        if not candidates:
            return None

        same_chunk = [e for e in candidates if e.chunk == self.last_chunk_index]
        if same_chunk:
            winner = same_chunk[-1]
        else:
            forward = [e for e in candidates if e.chunk >= self.last_chunk_index]
            if not forward:
                return None
            winner = max(forward, key=lambda e: e.chunk)

        self.last_chunk_index = winner.chunk
        return winner

    def find_closest(self, seconds: float) -> Optional[WordBoundaryEvent]:
        """
        Find the latest event that started at or before the given time.

        Used during silence between words. Events from chunks before the
        current one are skipped so the fallback obeys the same forward bias.
        """
        ticks = seconds * TICKS_PER_SECOND
        index = bisect_right(self._offsets, ticks) - 1
        while index >= 0:
            event = self._events[index]
            if event.chunk >= self.last_chunk_index:
                return event
            index -= 1
        return None

    def find_by_text_offset(self, text_offset: int, chunk_index: int) -> Optional[WordBoundaryEvent]:
        """Find the chunk's event with the greatest text offset not past text_offset."""
        best = None
        for event in self._events:
            if event.chunk != chunk_index or event.text_offset is None:
                continue
            if event.text_offset <= text_offset and (best is None or event.text_offset > best.text_offset):
                best = event
        return best

    def events_for_chunk(self, chunk_index: int) -> List[WordBoundaryEvent]:
        return [e for e in self._events if e.chunk == chunk_index]

    def remove_chunk(self, chunk_index: int) -> None:
        """Drop every event belonging to a chunk."""
        self._events = [e for e in self._events if e.chunk != chunk_index]
        self._offsets = [e.offset for e in self._events]

    def reset(self) -> None:
        """Clear all events and the chunk bias."""
        self._events = []
        self._offsets = []
        self.last_chunk_index = -1

    def last_end_ticks(self) -> int:
        """End of the latest-finishing event, in ticks."""
        if not self._events:
            return 0
        return max(e.end for e in self._events)

    def _covering(self, ticks: float) -> List[WordBoundaryEvent]:
        # Walk back from the last event starting at or before the time
        index = bisect_right(self._offsets, ticks) - 1
        found = []
        while index >= 0:
            event = self._events[index]
            if ticks - event.offset > CANDIDATE_LOOKBACK_TICKS:
                break
            if event.covers(ticks):
                found.append(event)
            index -= 1
        found.reverse()
        return found
