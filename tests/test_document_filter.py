import pytest

from voxtrack.readalong.document_filter import Chunk, DocumentFilter, FilterOptions, process_document
from voxtrack.readalong.errors import ConfigurationError


def transform(text, **kwargs):
    return DocumentFilter(FilterOptions(**kwargs)).transform(text)


def test_zh_symbols_are_verbalized():
    assert transform("3 < 5", lang="zh-CN").text == "3 小于 5"


def test_en_symbols_are_verbalized():
    assert transform("3 < 5 and 2 >= 1").text == "3 less than 5 and 2 greater than or equal to 1"


def test_symbol_words_map_to_the_symbol():
    source = "3 < 5"
    tracked = transform(source, lang="zh-CN")
    start = tracked.text.index("小于")
    assert tracked.map[start] == source.index("<")
    assert tracked.map[start + 1] == source.index("<")


def test_links_collapse_to_captions():
    source = "Click [here](https://example.com/page) or [[Link]]."
    tracked = transform(source)
    assert tracked.text == "Click here or Link."

    start = tracked.text.index("here")
    assert tracked.map[start:start + 4] == list(range(source.index("here"), source.index("here") + 4))
    link = tracked.text.index("Link")
    assert tracked.map[link] == source.index("Link")


def test_wiki_alias_keeps_alias():
    assert transform("See [[Some Page|the page]] today").text == "See the page today"


def test_bare_urls_removed():
    assert transform("Visit https://example.com now").text == "Visit now"


def test_bare_urls_kept_when_link_filter_off():
    assert "https://example.com" in transform("Visit https://example.com now", filter_links=False).text


def test_frontmatter_removed():
    source = "---\ntitle: Notes\ntags: [a]\n---\nHello there"
    tracked = transform(source)
    assert tracked.text == "Hello there"
    assert tracked.map[0] == source.index("Hello")


def test_code_removed():
    tracked = transform("Run `ls -la` now.\n```python\nprint(1)\n```\nDone.")
    assert "print" not in tracked.text
    assert "ls" not in tracked.text
    assert tracked.text.startswith("Run now.")
    assert tracked.text.endswith("Done.")


def test_code_kept_when_filter_off():
    assert "ls" in transform("Run `ls` now.", filter_code=False).text


def test_math_removed_but_currency_kept():
    assert transform("Euler $e^{i\\pi}$ rocks").text == "Euler rocks"
    assert transform("It costs $5 and $10 today").text == "It costs $5 and $10 today"
    assert transform("Block\n$$\nx^2\n$$\nafter").text == "Block\n\nafter"


def test_headers_and_emphasis_stripped():
    source = "# Title\n\nSome **bold** text"
    tracked = transform(source)
    assert tracked.text == "Title\n\nSome bold text"
    assert tracked.map[0] == source.index("Title")


def test_editor_syntax_removed():
    source = "> [!note] Heads up\n> Body line\nText %%hidden%% end <!-- c --> ^block-1"
    tracked = transform(source)
    assert "note" not in tracked.text
    assert "hidden" not in tracked.text
    assert "^block" not in tracked.text
    assert "Body line" in tracked.text


def test_embeds_and_emoji_removed():
    tracked = transform("Look ![alt](img.png) and ![[Embedded]] \U0001F600 done")
    assert tracked.text == "Look and done"


def test_tables_flatten_to_comma_separated_cells():
    tracked = transform("| Name | Age |\n|------|-----|\n| Ann | 30 |")
    assert "|" not in tracked.text
    assert "---" not in tracked.text
    assert "Name, Age" in tracked.text
    assert "Ann, 30" in tracked.text


def test_map_length_matches_after_pipeline():
    tracked = transform("# H\n\n| a | b |\n|--|--|\n[x](y) 1 < 2 `c` $m$ **z**")
    assert len(tracked.map) == len(tracked.text)


def test_hard_cut_chunking_maps_second_chunk():
    source = "a" * 300 + "b" * 100
    chunks = process_document(source, FilterOptions(max_chunk_length=300))
    assert len(chunks) == 2
    assert chunks[0].text == "a" * 300
    assert chunks[1].text.startswith("b")
    assert chunks[1].map[0] == 300


def test_chunks_prefer_sentence_boundary():
    chunks = process_document("Alpha beta gammas. Delta epsilon.", FilterOptions(max_chunk_length=20))
    assert [c.text.strip() for c in chunks] == ["Alpha beta gammas.", "Delta epsilon."]


def test_chunk_maps_are_non_decreasing_and_bounded():
    source = " ".join(f"Sentence number {i} is here." for i in range(80))
    chunks = process_document(source, FilterOptions(max_chunk_length=120))
    assert len(chunks) > 1
    previous = -1
    for chunk in chunks:
        assert 0 < len(chunk.text) <= 120
        assert len(chunk.map) == len(chunk.text)
        for value in chunk.map:
            assert value >= previous
            previous = value


def test_short_text_is_one_chunk():
    chunks = process_document("Just one line.", FilterOptions())
    assert len(chunks) == 1
    assert chunks[0].map == list(range(len("Just one line.")))


def test_nothing_speakable_gives_no_chunks():
    assert process_document("```\ncode only\n```", FilterOptions()) == []


def test_source_range_spans_word():
    chunk = process_document("Hi [there](u)", FilterOptions())[0]
    assert chunk.source_range(chunk.text.index("there"), 5) == (4, 9)


def test_invalid_max_length_raises():
    with pytest.raises(ConfigurationError):
        DocumentFilter(FilterOptions(max_chunk_length=0))


def test_chunks_compare_by_value_and_are_unhashable():
    chunk = Chunk("Hi.", [0, 1, 2])
    assert chunk == Chunk("Hi.", [0, 1, 2])
    assert Chunk.__hash__ is None
