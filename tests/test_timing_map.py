from voxtrack.readalong.document_filter import FilterOptions, process_document
from voxtrack.readalong.protocol import TICKS_PER_SECOND, WordBoundaryEvent
from voxtrack.readalong.timing_map import ReadAlongMap, TimingMap


def test_builds_words_with_document_ranges():
    chunks = process_document("Say [hello](u) world", FilterOptions())
    assert chunks[0].text == "Say hello world"
    events = [
        WordBoundaryEvent(offset=6_000_000, duration=4_000_000, text="world",
                          text_offset=10, word_length=5, chunk_index=0),
        WordBoundaryEvent(offset=2_000_000, duration=3_000_000, text="hello",
                          text_offset=4, word_length=5, chunk_index=0),
        WordBoundaryEvent(offset=0, duration=1_000_000, text="lost"),
    ]

    read_map = TimingMap("notes.md", "en-US-JennyNeural").add_events(events, chunks, document_base=100).build()

    assert [w.text for w in read_map.words] == ["hello", "world"]
    hello = read_map.words[0]
    assert (hello.doc_start, hello.doc_end) == (105, 110)
    assert hello.start == 0.2
    assert read_map.duration == 1.0
    assert read_map.word_at(0.7).text == "world"
    assert read_map.word_at(0.55) is None


def test_save_and_load(tmp_path):
    builder = TimingMap("doc.md", "en-GB-SoniaNeural", audio_file="doc.mp3")
    builder.add_entry(start=0.0, end=0.5, text="Hi", doc_start=0, doc_end=2)

    path = builder.save(tmp_path / "out" / "doc")
    assert path.suffix == ".json"

    loaded = ReadAlongMap.load(path)
    assert loaded.document == "doc.md"
    assert loaded.audio_file == "doc.mp3"
    assert loaded.duration == 0.5
    assert loaded.words[0].text == "Hi"
    assert (loaded.words[0].doc_start, loaded.words[0].doc_end) == (0, 2)
    assert loaded.to_dict()["wordCount"] == 1
