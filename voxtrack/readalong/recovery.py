"""
Recovery Module

Decides where to resume after the speech service connection drops in the
middle of a chunk: which chunk was really playing, which text position to
resend from, and where that position sits on the absolute audio timeline.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from voxtrack.readalong.protocol import WordBoundaryEvent
from voxtrack.readalong.synthesis_index import SynthesisIndex
from voxtrack.readalong.timeline import AudioTime

STRONG_TERMINATORS = frozenset(".!?。！？\n")
WEAK_TERMINATORS = frozenset(",，;；")
DEFAULT_LOOKBACK = 50


@dataclass
class RecoveryPlan:
    """Where and how to resume an interrupted chunk."""

    chunk_index: int
    restart_index: int  # Full-chunk-relative text index
    anchor: AudioTime  # Absolute; seek here as-is
    resend_text: str
    advance: bool  # Nothing left in this chunk; continue with the next
    matched_event: Optional[WordBoundaryEvent] = None


def find_restart_index(text: str, scan_start: int, lookback: int = DEFAULT_LOOKBACK) -> int:
    """
    Pick the text index to resume from.

    Scans backward from scan_start for the nearest sentence end (or newline).
    Within lookback characters, resume right after it. Farther than that, a
    nearer comma or semicolon is preferred, otherwise the chunk restarts. With
    no sentence end at all, resume after a comma or semicolon if there is one.

    Args:
        text: Full speakable text of the chunk
        scan_start: Text index reached when playback stopped
        lookback: Max distance to a sentence end that is still accepted

    Returns:
        Restart index (0 means resend the whole chunk)
    """
    scan_start = min(scan_start, len(text))
    if scan_start <= 0:
        return 0

    last_strong = -1
    last_weak = -1
    for i in range(scan_start - 1, -1, -1):
        ch = text[i]
        if ch in STRONG_TERMINATORS:
            last_strong = i
            break
        if last_weak == -1 and ch in WEAK_TERMINATORS:
            last_weak = i

    if last_strong != -1:
        if scan_start - last_strong <= lookback:
            return last_strong + 1
        if last_weak != -1:
            return last_weak + 1
        return 0
    if last_weak != -1:
        return last_weak + 1
    return 0


class RecoveryPlanner:
    """
    Plan resumption of an interrupted chunk from the synthesis index.

    The planner only reads state; the session applies the plan (evicting the
    chunk's events, moving cursors, reseeking and resending).
    """

    def __init__(self, index: SynthesisIndex, lookback: int = DEFAULT_LOOKBACK):
        self.index = index
        self.lookback = lookback

    def plan(
        self,
        now_seconds: float,
        chunk_texts: Sequence[str],
        chunk_bases: Mapping[int, AudioTime],
        playing_chunk: int,
        last_processed: Mapping[int, int],
    ) -> RecoveryPlan:
        """
        Plan a recovery at the current playback time.

        Args:
            now_seconds: Playback time when the interruption was noticed
            chunk_texts: Speakable text of every chunk
            chunk_bases: Absolute start time of each chunk sent so far
            playing_chunk: Chunk believed to be playing, used only when no
                event matches the current time
            last_processed: Last highlighted text index per chunk

        Returns:
            RecoveryPlan
        """
        event = self.index.find_active(now_seconds)
        if event is None:
            event = self.index.find_closest(now_seconds)

        # The matched event knows its chunk; the send counter may be ahead
        chunk_index = event.chunk if event is not None else playing_chunk
        text = chunk_texts[chunk_index] if 0 <= chunk_index < len(chunk_texts) else ""

        if event is not None and event.text_offset is not None:
            scan_start = event.text_offset
        else:
            scan_start = last_processed.get(chunk_index, 0)

        restart_index = find_restart_index(text, scan_start, self.lookback)

        base = chunk_bases.get(chunk_index, AudioTime(now_seconds))
        anchor = base
        if restart_index > 0:
            restart_event = self.index.find_by_text_offset(restart_index, chunk_index)
            if restart_event is not None:
                # Index offsets are already absolute
                anchor = AudioTime.from_ticks(restart_event.offset)

        resend_text = text[restart_index:].strip()
        return RecoveryPlan(
            chunk_index=chunk_index,
            restart_index=restart_index,
            anchor=anchor,
            resend_text=resend_text,
            advance=restart_index >= len(text) or not resend_text,
            matched_event=event,
        )
