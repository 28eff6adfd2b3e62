import json

from voxtrack.readalong.protocol import (
    PATH_AUDIO,
    PATH_METADATA,
    decode_frame,
    decode_metadata_body,
    encode_binary_frame,
    encode_text_frame,
    is_protocol_artifact,
    parse_metadata,
)


def boundary(data, type_="WordBoundary"):
    return {"Metadata": [{"Type": type_, "Data": data}]}


def test_nested_shape_reads_text_object():
    events = parse_metadata(boundary({
        "Offset": 1_000_000,
        "Duration": 2_500_000,
        "text": {"Text": "world", "Offset": 6, "Length": 5, "BoundaryType": "WordBoundary"},
    }))
    assert len(events) == 1
    event = events[0]
    assert event.offset == 1_000_000
    assert event.duration == 2_500_000
    assert event.text == "world"
    assert event.text_offset == 6
    assert event.word_length == 5
    assert event.chunk_index is None


def test_nested_shape_without_text_offset():
    events = parse_metadata(boundary({
        "Offset": 10, "Duration": 20, "Text": {"Text": "Hi", "Length": 2},
    }))
    assert events[0].text == "Hi"
    assert events[0].text_offset is None


def test_flat_shape_never_takes_audio_offset_as_text_offset():
    events = parse_metadata(boundary({"Offset": 5_000_000, "Duration": 100, "Text": "hello"}))
    assert events[0].offset == 5_000_000
    assert events[0].text_offset is None
    assert events[0].word_length == 5


def test_flat_shape_with_explicit_text_offset():
    events = parse_metadata(boundary({"offset": 7, "duration": 3, "text": "hey", "TextOffset": 12}))
    assert events[0].offset == 7
    assert events[0].text_offset == 12


def test_non_word_items_and_empty_words_skipped():
    payload = {"Metadata": [
        {"Type": "SessionEnd", "Data": {"Offset": 1}},
        {"Type": "WordBoundary", "Data": {"Offset": 1, "Duration": 1, "Text": ""}},
        {"Type": "WordBoundary"},
        "junk",
    ]}
    assert parse_metadata(payload) == []
    assert parse_metadata({}) == []
    assert parse_metadata([1, 2]) == []


def test_decode_metadata_body():
    body = json.dumps(boundary({"Offset": 1, "Duration": 2, "text": {"Text": "ok"}}))
    assert decode_metadata_body(body)[0].text == "ok"


def test_text_frame_decoding():
    frame = decode_frame(encode_text_frame({"X-RequestId": "abc", "Path": PATH_METADATA}, '{"a": 1}'))
    assert not frame.is_binary
    assert frame.path == PATH_METADATA
    assert frame.headers["X-RequestId"] == "abc"
    assert frame.body == '{"a": 1}'


def test_binary_frame_decoding():
    frame = decode_frame(encode_binary_frame({"Path": PATH_AUDIO}, b"\x00\x01\x02"))
    assert frame.is_binary
    assert frame.path == PATH_AUDIO
    assert frame.body == b"\x00\x01\x02"


def test_truncated_binary_frame():
    frame = decode_frame(b"\x00")
    assert frame.is_binary
    assert frame.body == b""
    assert frame.path == ""


def test_protocol_artifacts():
    assert is_protocol_artifact("speak")
    assert is_protocol_artifact("</voice>")
    assert is_protocol_artifact("&amp;")
    assert is_protocol_artifact("/")
    assert not is_protocol_artifact("Hello")
    assert not is_protocol_artifact("amp")
    assert not is_protocol_artifact("")
