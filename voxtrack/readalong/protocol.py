"""
Speech Service Protocol Module

Decodes what the Edge read-aloud service sends back: framed messages carrying
either audio bytes or JSON control payloads, and the word boundary metadata
inside them. The service is inconsistent about metadata shapes; all of that
guessing is confined to parse_metadata().
"""

import json
import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

TICKS_PER_SECOND = 10_000_000

PATH_AUDIO = "audio"
PATH_METADATA = "audio.metadata"
PATH_TURN_START = "turn.start"
PATH_TURN_END = "turn.end"
PATH_RESPONSE = "response"

HEADER_SEPARATOR = "\r\n\r\n"


@dataclass
class WordBoundaryEvent:
    """One spoken word and where it sits on the audio timeline."""

    offset: int  # Start in ticks (100ns)
    duration: int  # Duration in ticks
    text: str  # The word as the service reported it
    text_offset: Optional[int] = None  # Index into the owning chunk's text
    word_length: int = 0
    chunk_index: Optional[int] = None

    @property
    def end(self) -> int:
        return self.offset + self.duration

    @property
    def chunk(self) -> int:
        """Owning chunk, treating untagged events as chunk 0."""
        return self.chunk_index if self.chunk_index is not None else 0

    def covers(self, ticks: float) -> bool:
        return self.offset <= ticks < self.end


@dataclass
class Frame:
    """A decoded transport frame."""

    headers: Dict[str, str] = field(default_factory=dict)
    body: Union[str, bytes] = ""
    is_binary: bool = False

    @property
    def path(self) -> str:
        return self.headers.get("Path", "")


def _first(source: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_metadata(payload: Any) -> List[WordBoundaryEvent]:
    """
    Normalize a metadata payload into word boundary events.

    Two shapes exist. In the nested shape Data.text (or Data.Text) is an
    object whose Offset is a text offset relative to the spoken phrase. In the
    flat shape every field sits on Data and the top-level Offset is audio
    time, so only an explicit TextOffset may set the text offset.

    Args:
        payload: Decoded JSON object with a "Metadata" array

    Returns:
        Events in payload order; items that are not word boundaries, or have
        no word, produce nothing
    """
    events: List[WordBoundaryEvent] = []
    if not isinstance(payload, dict):
        return events

    items = payload.get("Metadata")
    if not isinstance(items, list):
        return events

    for item in items:
        if not isinstance(item, dict) or item.get("Type") != "WordBoundary":
            continue
        data = item.get("Data")
        if not isinstance(data, dict):
            continue

        audio_offset = _as_int(_first(data, "Offset", "offset"))
        audio_duration = _as_int(_first(data, "Duration", "duration"))

        nested = _first(data, "text", "Text")
        if isinstance(nested, dict):
            source = nested
            raw_text_offset = _first(source, "Offset", "offset", "TextOffset")
        else:
            source = data
            raw_text_offset = _first(source, "TextOffset", "textOffset")

        word = _first(source, "Text", "text", "Word")
        word = "" if word is None or isinstance(word, dict) else str(word)
        if not word:
            continue

        text_offset = None
        if raw_text_offset is not None:
            text_offset = _as_int(raw_text_offset, default=None)

        word_length = _as_int(_first(source, "Length", "length", "WordLength"), len(word))

        events.append(WordBoundaryEvent(
            offset=audio_offset,
            duration=audio_duration,
            text=word,
            text_offset=text_offset,
            word_length=word_length,
        ))

    return events


# SSML leaking through as words: tag names, entity fragments, stray slashes
_ARTIFACT_TAGS = {"speak", "voice", "prosody", "break", "phoneme", "say-as", "sub", "lang"}
_ENTITY_FRAGMENT = re.compile(r"^&?(?:amp|lt|gt|quot|apos|#\d+|#x[0-9a-fA-F]+);?$")
_TAG_FRAGMENT = re.compile(r"^</?\s*[\w:-]*\s*/?>?$")


def is_protocol_artifact(word: str) -> bool:
    """
    Check if a reported word is protocol noise rather than document text.

    Used for optional filtering downstream; parsing never depends on it.
    """
    token = word.strip()
    if not token:
        return False
    lowered = token.lower()
    if lowered in _ARTIFACT_TAGS or lowered.startswith("mstts:"):
        return True
    if set(token) <= {"/", "\\"}:
        return True
    if _ENTITY_FRAGMENT.match(token) and (";" in token or token.startswith("&")):
        return True
    return token.startswith("<") and bool(_TAG_FRAGMENT.match(token))


def _parse_headers(block: str) -> Dict[str, str]:
    headers = {}
    for line in block.split("\r\n"):
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip()] = value.strip()
    return headers


def decode_frame(frame: Union[str, bytes, bytearray]) -> Frame:
    """
    Decode one transport frame.

    Text frames are a header block ended by a blank line, then the body.
    Binary frames start with a 2-byte big-endian header length, then the
    header block, then audio bytes.
    """
    if isinstance(frame, str):
        head, sep, body = frame.partition(HEADER_SEPARATOR)
        if not sep:
            return Frame(headers=_parse_headers(frame), body="")
        return Frame(headers=_parse_headers(head), body=body)

    data = bytes(frame)
    if len(data) < 2:
        return Frame(body=b"", is_binary=True)
    (header_length,) = struct.unpack(">H", data[:2])
    header_block = data[2:2 + header_length].decode("utf-8", errors="replace")
    return Frame(
        headers=_parse_headers(header_block.rstrip("\r\n")),
        body=data[2 + header_length:],
        is_binary=True,
    )


def _header_block(headers: Dict[str, str]) -> str:
    return "\r\n".join(f"{name}:{value}" for name, value in headers.items())


def encode_text_frame(headers: Dict[str, str], body: str = "") -> str:
    """Build a text control frame."""
    return f"{_header_block(headers)}{HEADER_SEPARATOR}{body}"


def encode_binary_frame(headers: Dict[str, str], audio: bytes) -> bytes:
    """Build a binary audio frame."""
    header_bytes = (_header_block(headers) + "\r\n").encode("utf-8")
    return struct.pack(">H", len(header_bytes)) + header_bytes + audio


def decode_metadata_body(body: str) -> List[WordBoundaryEvent]:
    """Parse the JSON body of an audio.metadata frame."""
    return parse_metadata(json.loads(body))
