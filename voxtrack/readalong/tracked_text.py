"""
Tracked Text Module

Text paired with a provenance map. Every character of the text remembers the
offset it came from in the original, untransformed input, so a rewritten
document can still be highlighted in place.

All operations return a new TrackedText and leave the receiver untouched.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

Replacement = Union[str, Callable[[re.Match], str]]


def _compile(pattern: Union[str, re.Pattern]) -> re.Pattern:
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


@dataclass(frozen=True)
class TrackedText:
    """Text plus a map of original offsets, one entry per character."""

    text: str
    map: List[int] = field(default_factory=list)

    # Compared by value; the list map makes instances unhashable
    __hash__ = None

    def __post_init__(self):
        if len(self.map) != len(self.text):
            raise ValueError(
                f"map length {len(self.map)} does not match text length {len(self.text)}"
            )

    @classmethod
    def from_text(cls, text: str) -> "TrackedText":
        """Wrap raw text with the identity map."""
        return cls(text, list(range(len(text))))

    def __len__(self) -> int:
        return len(self.text)

    def replace(self, pattern: Union[str, re.Pattern], replacement: Replacement) -> "TrackedText":
        """
        Replace every match of pattern.

        Unmatched spans keep their map entries. Each character of a replacement
        is mapped to the original offset of the first matched character; an
        empty match at the very end maps to the last character.

        Args:
            pattern: Regex (string or compiled)
            replacement: Static string or a callable taking the match

        Returns:
            New TrackedText
        """
        regex = _compile(pattern)
        text_parts: List[str] = []
        map_parts: List[int] = []
        pos = 0

        for match in regex.finditer(self.text):
            start, end = match.span()
            new = replacement(match) if callable(replacement) else replacement
            if start == end and not new:
                continue

            text_parts.append(self.text[pos:start])
            map_parts.extend(self.map[pos:start])

            if new:
                anchor = self._anchor_at(start)
                text_parts.append(new)
                map_parts.extend([anchor] * len(new))
            pos = end

        if pos == 0 and not text_parts:
            return self

        text_parts.append(self.text[pos:])
        map_parts.extend(self.map[pos:])
        return TrackedText("".join(text_parts), map_parts)

    def remove(self, pattern: Union[str, re.Pattern]) -> "TrackedText":
        """Delete every match of pattern."""
        return self.replace(pattern, "")

    def keep_group1(self, pattern: Union[str, re.Pattern]) -> "TrackedText":
        """
        Replace each match with its first capture group.

        Designed for forms like ``[text](url)``, ``[[target|alias]]`` and
        ``[[target]]``. Unlike replace(), every kept character keeps its own
        original offset.
        """
        regex = _compile(pattern)
        text_parts: List[str] = []
        map_parts: List[int] = []
        pos = 0

        for match in regex.finditer(self.text):
            group = match.group(1)
            if group is None:
                continue

            group_start = match.start(1)
            start, end = match.span()
            text_parts.append(self.text[pos:start])
            map_parts.extend(self.map[pos:start])
            text_parts.append(group)
            map_parts.extend(self.map[group_start:group_start + len(group)])
            pos = end

        if not text_parts:
            return self

        text_parts.append(self.text[pos:])
        map_parts.extend(self.map[pos:])
        return TrackedText("".join(text_parts), map_parts)

    def slice(self, start: int, end: Optional[int] = None) -> "TrackedText":
        """Substring with the matching part of the map."""
        return TrackedText(self.text[start:end], self.map[start:end])

    def trim(self) -> "TrackedText":
        """Strip leading and trailing whitespace from text and map together."""
        stripped = self.text.strip()
        if not stripped:
            return TrackedText("", [])
        start = len(self.text) - len(self.text.lstrip())
        end = start + len(stripped)
        if start == 0 and end == len(self.text):
            return self
        return self.slice(start, end)

    def _anchor_at(self, index: int) -> int:
        if index < len(self.map):
            return self.map[index]
        if self.map:
            return self.map[-1]
        return 0
