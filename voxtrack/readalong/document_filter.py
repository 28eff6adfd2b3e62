"""
Document Filter Module

Turns a markdown document into speakable text for the speech service.
Structural syntax is stripped and symbols are verbalized, while every spoken
character keeps a link back to its offset in the source document.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from voxtrack.readalong.errors import ConfigurationError
from voxtrack.readalong.tracked_text import TrackedText
from voxtrack.utils.config import Config, config


@dataclass
class FilterOptions:
    """Independently toggleable filters for one read-aloud run."""

    filter_frontmatter: bool = True
    filter_code: bool = True
    filter_math: bool = True
    filter_editor_syntax: bool = True
    filter_links: bool = True
    lang: str = "en-US"
    max_chunk_length: int = 2500

    @classmethod
    def from_config(cls, settings: Config = config) -> "FilterOptions":
        """Build options from the filters section of the settings."""
        return cls(
            filter_frontmatter=bool(settings.get("filters", "frontmatter", default=True)),
            filter_code=bool(settings.get("filters", "code", default=True)),
            filter_math=bool(settings.get("filters", "math", default=True)),
            filter_editor_syntax=bool(settings.get("filters", "editor_syntax", default=True)),
            filter_links=bool(settings.get("filters", "links", default=True)),
            lang=settings.lang,
            max_chunk_length=settings.max_chunk_length,
        )


@dataclass(frozen=True)
class Chunk:
    """One synthesis request: speakable text and its source offsets."""

    text: str
    map: List[int] = field(default_factory=list)

    # Compared by value; the list map makes instances unhashable
    __hash__ = None

    def source_range(self, text_offset: int, length: int) -> Tuple[int, int]:
        """
        Map a span of chunk text back to a [start, end) range in the source.

        Offsets are relative to the filtered input; add the document base to
        get absolute document positions.
        """
        if not self.map:
            return 0, 0
        first = min(max(text_offset, 0), len(self.map) - 1)
        last = min(max(text_offset + max(length, 1) - 1, first), len(self.map) - 1)
        return self.map[first], max(self.map[last], self.map[first]) + 1


# Structural blocks
FRONTMATTER = re.compile(r"\A---[ \t]*\n.*?\n---[ \t]*(?:\n|\Z)", re.S)
CODE_BLOCK = re.compile(r"(```|~~~).*?\1", re.S)
INLINE_CODE = re.compile(r"`[^`\n]+`")
MATH_BLOCK = re.compile(r"\$\$.*?\$\$", re.S)
# Opening $ needs a non-space after it, closing $ a non-space before and no
# digit after, so prices like "$1.00 | $2.00" are not math
INLINE_MATH = re.compile(r"\$(?=\S)[^$\n]*?[^\s$]\$(?!\d)")

# Editor-specific syntax
CALLOUT_HEADER = re.compile(r"^[ \t]*>[ \t]*\[![^\]\n]*\][^\n]*\n?", re.M)
EDITOR_COMMENT = re.compile(r"%%.*?%%", re.S)
HTML_COMMENT = re.compile(r"<!--.*?-->", re.S)
HTML_TAG = re.compile(r"</?[A-Za-z][A-Za-z0-9-]*(?:\s[^<>\n]*)?/?>")
BLOCK_ID = re.compile(r"(?<!\S)\^[A-Za-z0-9-]+(?=[ \t]*$)", re.M)

# Links and media
MARKDOWN_LINK = re.compile(r"(?<!!)\[([^\]\n]+)\]\([^)\n]*\)")
WIKI_ALIAS_LINK = re.compile(r"(?<!!)\[\[[^\]|\n]+\|([^\]\n]+)\]\]")
WIKI_LINK = re.compile(r"(?<!!)\[\[([^\]|\n]+)\]\]")
BARE_URL = re.compile(r"<?https?://[^\s<>()]+>?")
EMBEDDED_IMAGE = re.compile(r"!\[[^\]\n]*\]\([^)\n]*\)")
EMBEDDED_NOTE = re.compile(r"!\[\[[^\]\n]*\]\]")
EMOJI = re.compile(
    "["
    "\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\U0001F900-\U0001F9FF"
    "\U0001F018-\U0001F0F5"
    "\U0001F200-\U0001F270"
    "\uFE0F"
    "]"
)

# Tables: cell borders become commas so the voice still pauses per cell
TABLE_EDGE_LEFT = re.compile(r"^[ \t]*\|", re.M)
TABLE_EDGE_RIGHT = re.compile(r"\|[ \t]*$", re.M)
TABLE_INNER_PIPE = re.compile(r"[ \t]*\|[ \t]*")
COMMA_RUN = re.compile(r",(?:[ \t]*,)+")
LEADING_COMMA = re.compile(r"^[ \t]*,[ \t]*", re.M)
MARKER_ONLY_LINE = re.compile(r"^[ \t,:=-]*-[ \t,:=-]*$", re.M)

# Inline formatting and line markers
FORMAT_MARKERS = re.compile(r"[*_`~]")
LINE_MARKERS = re.compile(r"^[ \t]*(?:#{1,6}(?=[ \t]|$)|(?:>[ \t]*)+|[-+](?=[ \t]))[ \t]*", re.M)

# Whitespace
SPACE_RUN = re.compile(r"[ \t\u00a0\u3000]{2,}|\t")
LINE_EDGE_SPACE = re.compile(r"[ \t]+(?=\n)|(?<=\n)[ \t]+")
BLANK_LINES = re.compile(r"\n{3,}")

SYMBOL_WORDS: Dict[str, Dict[str, str]] = {
    "zh": {
        "<=": "小于等于",
        ">=": "大于等于",
        "<": "小于",
        ">": "大于",
        "=": "等于",
        "+": "加",
    },
    "en": {
        "<=": " less than or equal to ",
        ">=": " greater than or equal to ",
        "<": " less than ",
        ">": " greater than ",
        "=": " equals ",
        "+": " plus ",
    },
}

# Chunk boundaries in priority order
CHUNK_SEPARATORS = ("\n\n", ". ", ", ", " ")
CHUNK_WINDOW_RATIO = 0.2


def symbol_words(lang: str) -> Dict[str, str]:
    """Spoken words for comparison and math glyphs in the target language."""
    if lang.lower().startswith("zh"):
        return SYMBOL_WORDS["zh"]
    return SYMBOL_WORDS["en"]


class DocumentFilter:
    """Rewrite markdown into speakable chunks that remember their source offsets."""

    def __init__(self, options: Optional[FilterOptions] = None):
        self.options = options or FilterOptions.from_config()
        if self.options.max_chunk_length <= 0:
            raise ConfigurationError(
                f"max_chunk_length must be positive, got {self.options.max_chunk_length}"
            )
        self._symbol_patterns = [
            (re.compile(rf"(?<=[\s\d]){re.escape(symbol)}(?=[\s\d])"), word)
            for symbol, word in sorted(
                symbol_words(self.options.lang).items(),
                key=lambda item: len(item[0]),
                reverse=True,
            )
        ]

    def process(self, text: str) -> List[Chunk]:
        """
        Transform text and split it into chunks.

        Args:
            text: Document text (whole document, or from cursor/selection)

        Returns:
            Chunks whose maps point into the given text
        """
        return self.chunk(self.transform(text))

    def transform(self, text: str) -> TrackedText:
        """Apply the fixed filter pipeline to text."""
        opts = self.options
        tracked = TrackedText.from_text(text)

        if opts.filter_frontmatter:
            tracked = tracked.remove(FRONTMATTER)
        if opts.filter_code:
            tracked = tracked.remove(CODE_BLOCK).remove(INLINE_CODE)
        if opts.filter_math:
            tracked = tracked.remove(MATH_BLOCK).remove(INLINE_MATH)
        if opts.filter_editor_syntax:
            tracked = self._remove_editor_syntax(tracked)

        tracked = self._simplify_links(tracked)
        tracked = tracked.remove(EMBEDDED_IMAGE).remove(EMBEDDED_NOTE)
        # Emoji would be read out as their descriptions
        tracked = tracked.remove(EMOJI)

        tracked = self._flatten_tables(tracked)
        tracked = tracked.remove(MARKER_ONLY_LINE)
        # A space keeps "A*B" from turning into one word
        tracked = tracked.replace(FORMAT_MARKERS, " ")
        tracked = tracked.remove(LINE_MARKERS)
        tracked = self._verbalize_symbols(tracked)

        tracked = tracked.replace(SPACE_RUN, " ")
        tracked = tracked.remove(LINE_EDGE_SPACE)
        tracked = tracked.replace(BLANK_LINES, "\n\n")
        return tracked.trim()

    def chunk(self, tracked: TrackedText) -> List[Chunk]:
        """
        Split tracked text into chunks of at most max_chunk_length characters.

        Cuts prefer a paragraph break, then a sentence end, then a comma, then
        any space, searched backward within the last 20% of the limit. With no
        boundary in that window the text is cut hard at the limit.
        """
        max_len = self.options.max_chunk_length
        if not tracked.text:
            return []
        if len(tracked) <= max_len:
            return [Chunk(tracked.text, list(tracked.map))]

        window = int(max_len * CHUNK_WINDOW_RATIO)
        chunks = []
        remaining = tracked

        while len(remaining) > 0:
            if len(remaining) <= max_len:
                chunks.append(Chunk(remaining.text, list(remaining.map)))
                break

            cut = max_len
            for separator in CHUNK_SEPARATORS:
                found = remaining.text.rfind(separator, 0, max_len)
                if found > max_len - window:
                    cut = found + len(separator)
                    break

            head = remaining.slice(0, cut)
            chunks.append(Chunk(head.text, list(head.map)))
            remaining = remaining.slice(cut)

        return chunks

    def _remove_editor_syntax(self, tracked: TrackedText) -> TrackedText:
        return (
            tracked.remove(CALLOUT_HEADER)
            .remove(EDITOR_COMMENT)
            .remove(HTML_COMMENT)
            .remove(HTML_TAG)
            .remove(BLOCK_ID)
        )

    def _simplify_links(self, tracked: TrackedText) -> TrackedText:
        """Collapse links to their captions; optionally drop bare URLs."""
        tracked = (
            tracked.keep_group1(MARKDOWN_LINK)
            .keep_group1(WIKI_ALIAS_LINK)
            .keep_group1(WIKI_LINK)
        )
        if self.options.filter_links:
            tracked = tracked.remove(BARE_URL)
        return tracked

    def _flatten_tables(self, tracked: TrackedText) -> TrackedText:
        tracked = tracked.remove(TABLE_EDGE_LEFT).remove(TABLE_EDGE_RIGHT)
        tracked = tracked.replace(TABLE_INNER_PIPE, ", ")
        # Empty cells would otherwise leave ", , ,"
        tracked = tracked.replace(COMMA_RUN, ",")
        return tracked.remove(LEADING_COMMA)

    def _verbalize_symbols(self, tracked: TrackedText) -> TrackedText:
        for pattern, word in self._symbol_patterns:
            tracked = tracked.replace(pattern, word)
        return tracked


def process_document(text: str, options: Optional[FilterOptions] = None) -> List[Chunk]:
    """
    Convenience function to filter and chunk a document.

    Args:
        text: Document text
        options: Filter options (default: from settings)

    Returns:
        List of Chunk objects
    """
    return DocumentFilter(options).process(text)
