"""
Console Player Module

Terminal stand-ins for the editor and the audio player: a rich-rendered
document view that shows the highlighted word in place, and an audio sink
that follows a wall clock over the received audio and saves it to disk.
"""

import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from rich.live import Live
from rich.text import Text

from voxtrack.utils import logger

# Edge streams 24kHz mono MP3 at a constant 48kbit/s
EDGE_MP3_BYTES_PER_SECOND = 48_000 // 8

# Characters of context shown around the highlighted word
CONTEXT_CHARS = 120


class ConsoleEditor:
    """
    Read-only document shown in the terminal.

    Highlights are rendered as a live-updating line of context around the
    current word, and recorded for inspection.
    """

    def __init__(
        self,
        text: str,
        cursor: int = 0,
        selection: Optional[Tuple[int, int]] = None,
        render: bool = True,
    ):
        self.text = text
        self.cursor = max(0, min(cursor, len(text)))
        self.selection = selection
        self.render = render
        self.highlights: List[Tuple[int, int]] = []
        self.current: Optional[Tuple[int, int]] = None
        self._live: Optional[Live] = None

    def get_value(self) -> str:
        return self.text

    def get_cursor_offset(self) -> int:
        return self.cursor

    def get_selection(self) -> Optional[Tuple[str, int]]:
        if not self.selection:
            return None
        start, end = self.selection
        if end <= start:
            return None
        return self.text[start:end], start

    def highlight_range(self, start: int, end: int) -> None:
        self.current = (start, end)
        self.highlights.append(self.current)
        if not self.render:
            return
        if self._live is None:
            self._live = Live(console=logger.console, auto_refresh=False, transient=True)
            self._live.start()
        self._live.update(self._view(start, end), refresh=True)

    def clear_highlight(self) -> None:
        self.current = None
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _view(self, start: int, end: int) -> Text:
        left = max(0, start - CONTEXT_CHARS)
        right = min(len(self.text), end + CONTEXT_CHARS)
        view = Text(self.text[left:right].replace("\n", " "))
        view.stylize("highlight", start - left, end - left)
        if left > 0:
            view = Text("…") + view
        return view


class RecordingAudioSink:
    """
    Audio sink that plays against a clock instead of a sound device.

    Playback starts when the first audio arrives and never runs past the
    buffered audio. Seeking drops everything buffered after the target, as a
    player restarting its stream would. On finish, the audio is written to
    output_path when one is given.
    """

    def __init__(
        self,
        output_path: Optional[Path] = None,
        clock: Callable[[], float] = time.monotonic,
        bytes_per_second: int = EDGE_MP3_BYTES_PER_SECOND,
    ):
        self.output_path = Path(output_path) if output_path else None
        self.clock = clock
        self.bytes_per_second = bytes_per_second
        self.buffer = bytearray()
        self.finished = False
        self._position = 0.0  # Playback position when the clock was last anchored
        self._started_at: Optional[float] = None

    def append_chunk(self, data: bytes) -> None:
        now = self.clock()
        if self._started_at is None:
            self._started_at = now
        elif self._position + (now - self._started_at) > self.get_buffered_end_seconds():
            # Underrun: playback stalled at the buffered end until now
            self._position = self.get_buffered_end_seconds()
            self._started_at = now
        self.buffer.extend(data)

    def get_buffered_end_seconds(self) -> float:
        return len(self.buffer) / self.bytes_per_second

    def get_current_time_seconds(self) -> float:
        if self._started_at is None:
            return self._position
        elapsed = self.clock() - self._started_at
        return min(self._position + elapsed, self.get_buffered_end_seconds())

    def seek_and_restart(self, seconds: float) -> None:
        seconds = min(max(0.0, seconds), self.get_buffered_end_seconds())
        del self.buffer[int(seconds * self.bytes_per_second):]
        self._position = seconds
        self._started_at = None
        self.finished = False
        logger.debug(f"Audio restarted at {seconds:.3f}s")

    def finish(self) -> None:
        self.finished = True
        if self.output_path is None:
            return
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_bytes(bytes(self.buffer))
        logger.success(f"Saved audio: {self.output_path}")
