"""
Timing Map Module

Exports the word timings of a read-aloud run as JSON, linking audio
timestamps to character ranges in the source document. A saved map lets a
reader replay the recorded audio with the same highlighting.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from voxtrack.readalong.document_filter import Chunk
from voxtrack.readalong.protocol import TICKS_PER_SECOND, WordBoundaryEvent
from voxtrack.utils import logger


@dataclass
class WordTiming:
    """One spoken word linked to its document range."""

    start: float  # Start time in seconds
    end: float  # End time in seconds
    text: str  # The word as spoken
    doc_start: int  # Document range, end exclusive
    doc_end: int
    chunk: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "start": round(self.start, 3),
            "end": round(self.end, 3),
            "text": self.text,
            "from": self.doc_start,
            "to": self.doc_end,
            "chunk": self.chunk,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WordTiming":
        return cls(
            start=data["start"],
            end=data["end"],
            text=data["text"],
            doc_start=data["from"],
            doc_end=data["to"],
            chunk=data.get("chunk", 0),
        )


@dataclass
class ReadAlongMap:
    """Complete timing map for one read-aloud run."""

    document: str  # Document name or path
    voice: str
    audio_file: Optional[str] = None  # Relative path to recorded audio
    words: List[WordTiming] = field(default_factory=list)
    duration: float = 0.0
    version: str = "1.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export."""
        return {
            "version": self.version,
            "document": self.document,
            "voice": self.voice,
            "audioFile": self.audio_file,
            "duration": round(self.duration, 3),
            "wordCount": len(self.words),
            "words": [w.to_dict() for w in self.words],
        }

    def word_at(self, seconds: float) -> Optional[WordTiming]:
        """Find the word being spoken at a time, if any."""
        for word in self.words:
            if word.start <= seconds < word.end:
                return word
        return None

    def save(self, output_path: Path) -> Path:
        """Save timing map to JSON file."""
        output_path = Path(output_path).with_suffix(".json")
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

        logger.success(f"Saved timing map: {output_path}")
        return output_path

    @classmethod
    def load(cls, path: Path) -> "ReadAlongMap":
        """Load timing map from JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return cls(
            document=data["document"],
            voice=data["voice"],
            audio_file=data.get("audioFile"),
            words=[WordTiming.from_dict(w) for w in data.get("words", [])],
            duration=data.get("duration", 0.0),
            version=data.get("version", "1.0"),
        )


class TimingMap:
    """
    Builder for read-along timing maps.

    Takes indexed word boundary events and the chunks they were spoken from,
    and resolves each word to a document range.
    """

    def __init__(self, document: str, voice: str, audio_file: Optional[str] = None):
        """
        Initialize timing map builder.

        Args:
            document: Document name or path
            voice: Voice the audio was synthesized with
            audio_file: Relative path to the recorded audio
        """
        self.read_map = ReadAlongMap(document=document, voice=voice, audio_file=audio_file)

    def add_events(
        self,
        events: Iterable[WordBoundaryEvent],
        chunks: Sequence[Chunk],
        document_base: int = 0,
    ) -> "TimingMap":
        """
        Add timing entries for indexed events.

        Events with no resolved text offset are skipped.

        Args:
            events: Events with absolute offsets and chunk tags
            chunks: Chunks the events were spoken from
            document_base: Offset of the read text within the document

        Returns:
            self for method chaining
        """
        for event in events:
            if event.text_offset is None or not 0 <= event.chunk < len(chunks):
                continue
            start, end = chunks[event.chunk].source_range(event.text_offset, event.word_length)
            self.add_entry(
                start=event.offset / TICKS_PER_SECOND,
                end=event.end / TICKS_PER_SECOND,
                text=event.text,
                doc_start=document_base + start,
                doc_end=document_base + end,
                chunk=event.chunk,
            )
        return self

    def add_entry(
        self,
        start: float,
        end: float,
        text: str,
        doc_start: int,
        doc_end: int,
        chunk: int = 0,
    ) -> "TimingMap":
        """Add a single timing entry."""
        self.read_map.words.append(WordTiming(
            start=start,
            end=end,
            text=text,
            doc_start=doc_start,
            doc_end=doc_end,
            chunk=chunk,
        ))
        self.read_map.duration = max(self.read_map.duration, end)
        return self

    def build(self) -> ReadAlongMap:
        """
        Finalize and return the timing map.

        Returns:
            ReadAlongMap with words in playback order
        """
        self.read_map.words.sort(key=lambda w: w.start)
        return self.read_map

    def save(self, output_path: Path) -> Path:
        """Build and save the timing map."""
        return self.build().save(output_path)
