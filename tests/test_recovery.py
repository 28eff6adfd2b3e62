import pytest

from voxtrack.readalong.protocol import TICKS_PER_SECOND, WordBoundaryEvent
from voxtrack.readalong.recovery import RecoveryPlanner, find_restart_index
from voxtrack.readalong.synthesis_index import SynthesisIndex
from voxtrack.readalong.timeline import AudioTime


def event(start, duration, chunk, text_offset, text):
    return WordBoundaryEvent(
        offset=int(round(start * TICKS_PER_SECOND)),
        duration=int(round(duration * TICKS_PER_SECOND)),
        text=text,
        text_offset=text_offset,
        word_length=len(text),
        chunk_index=chunk,
    )


class TestFindRestartIndex:
    def test_restarts_after_near_sentence_end(self):
        text = "Sentence one. Two."
        restart = find_restart_index(text, 15)
        assert restart == 13
        assert text[restart:].strip() == "Two."

    def test_far_sentence_end_prefers_nearer_comma(self):
        text = "a" * 10 + "." + "b" * 110 + "," + "c" * 40
        assert find_restart_index(text, 160) == 122

    def test_far_sentence_end_without_comma_restarts_chunk(self):
        text = "a" * 10 + "." + "b" * 100
        assert find_restart_index(text, 100) == 0

    def test_comma_only(self):
        assert find_restart_index("hello, world and more", 15) == 6

    def test_no_terminator_restarts_chunk(self):
        assert find_restart_index("just some words without breaks", 20) == 0

    def test_newline_counts_as_sentence_end(self):
        assert find_restart_index("Heading\nBody text", 12) == 8

    def test_cjk_terminators(self):
        text = "第一句。第二句"
        assert find_restart_index(text, 6) == 4

    def test_scan_start_past_end_is_clamped(self):
        assert find_restart_index("One. Two", 99) == 4


class TestRecoveryPlanner:
    def test_anchor_is_absolute(self):
        text = "Sentence one. Two more words here."
        index = SynthesisIndex()
        index.add([
            event(1080.0, 0.4, 1, 0, "Sentence"),
            event(1086.9245, 0.4, 1, 9, "one."),
            event(1087.5, 0.3, 1, 14, "Two"),
            event(1088.0, 0.4, 1, 18, "more"),
        ])
        planner = RecoveryPlanner(index)

        plan = planner.plan(
            now_seconds=1088.1,
            chunk_texts=["Earlier chunk.", text],
            chunk_bases={0: AudioTime(0.0), 1: AudioTime(1080.0)},
            playing_chunk=0,
            last_processed={},
        )

        assert plan.chunk_index == 1
        assert plan.restart_index == 13
        assert plan.anchor.ticks == 10_869_245_000
        assert plan.anchor.seconds == pytest.approx(1086.9245)
        assert plan.anchor.seconds != pytest.approx(2166.9245)
        assert plan.resend_text == "Two more words here."
        assert not plan.advance

    def test_chunk_comes_from_matched_event_not_playing_hint(self):
        index = SynthesisIndex()
        index.add([event(5.0, 1.0, 0, 3, "cat")])
        plan = RecoveryPlanner(index).plan(
            now_seconds=5.5,
            chunk_texts=["My cat sat.", "Next chunk."],
            chunk_bases={0: AudioTime(2.0), 1: AudioTime(9.0)},
            playing_chunk=1,
            last_processed={},
        )
        assert plan.chunk_index == 0
        assert plan.restart_index == 0
        assert plan.anchor == AudioTime(2.0)
        assert plan.resend_text == "My cat sat."

    def test_falls_back_to_last_processed_without_events(self):
        plan = RecoveryPlanner(SynthesisIndex()).plan(
            now_seconds=3.0,
            chunk_texts=["First one. Second one."],
            chunk_bases={0: AudioTime(1.5)},
            playing_chunk=0,
            last_processed={0: 15},
        )
        assert plan.matched_event is None
        assert plan.restart_index == 10
        # No event resolves the restart point, so the chunk base is used
        assert plan.anchor == AudioTime(1.5)
        assert plan.resend_text == "Second one."

    def test_nothing_left_advances(self):
        index = SynthesisIndex()
        index.add([event(0.0, 0.5, 0, 0, "Done.")])
        plan = RecoveryPlanner(index).plan(
            now_seconds=0.2,
            chunk_texts=["Done.  "],
            chunk_bases={0: AudioTime(0.0)},
            playing_chunk=0,
            last_processed={0: 7},
        )
        assert plan.restart_index == 0
        assert not plan.advance

        plan = RecoveryPlanner(SynthesisIndex()).plan(
            now_seconds=0.2,
            chunk_texts=["Done.  "],
            chunk_bases={0: AudioTime(0.0)},
            playing_chunk=0,
            last_processed={0: 7},
        )
        assert plan.restart_index == 5
        assert plan.resend_text == ""
        assert plan.advance
