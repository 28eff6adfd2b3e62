"""
Read-Along Module

Keeps a highlight in the original document synchronized with streamed speech.
Filters documents into speakable chunks that remember where each character
came from, indexes word timings from the speech service, and resumes
interrupted streams at sentence boundaries.
"""

from voxtrack.readalong.document_filter import Chunk, DocumentFilter, FilterOptions
from voxtrack.readalong.protocol import WordBoundaryEvent, parse_metadata
from voxtrack.readalong.recovery import RecoveryPlan, RecoveryPlanner
from voxtrack.readalong.session import ReadAlongSession, ReadMode
from voxtrack.readalong.synthesis_index import SynthesisIndex
from voxtrack.readalong.timing_map import ReadAlongMap, TimingMap
from voxtrack.readalong.tracked_text import TrackedText

__all__ = [
    "Chunk",
    "DocumentFilter",
    "FilterOptions",
    "WordBoundaryEvent",
    "parse_metadata",
    "RecoveryPlan",
    "RecoveryPlanner",
    "ReadAlongSession",
    "ReadMode",
    "SynthesisIndex",
    "ReadAlongMap",
    "TimingMap",
    "TrackedText",
]
