"""
Audio Timeline Module

Two kinds of time flow through a session. Vendor events are timed from the
start of their own stream; playback and the synthesis index use one absolute
timeline for the whole session. Keeping them as separate types makes adding
one to the other a TypeError instead of silent drift.
"""

from dataclasses import dataclass

from voxtrack.readalong.protocol import TICKS_PER_SECOND


@dataclass(frozen=True, order=True)
class AudioTime:
    """Absolute position on the session's audio timeline."""

    seconds: float

    @classmethod
    def from_ticks(cls, ticks: int) -> "AudioTime":
        return cls(ticks / TICKS_PER_SECOND)

    @property
    def ticks(self) -> int:
        return int(round(self.seconds * TICKS_PER_SECOND))

    def __str__(self) -> str:
        return f"{self.seconds:.3f}s"


@dataclass(frozen=True, order=True)
class StreamTime:
    """Position relative to the start of one vendor stream."""

    ticks: int

    def on(self, base: AudioTime) -> AudioTime:
        """Place this stream position on the absolute timeline."""
        return AudioTime.from_ticks(base.ticks + self.ticks)

    @property
    def seconds(self) -> float:
        return self.ticks / TICKS_PER_SECOND


SESSION_START = AudioTime(0.0)
