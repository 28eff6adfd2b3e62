from voxtrack.readalong.word_matching import expand_to_token, find_word_index, fuzzy_index


def test_exact_match_from_cursor():
    text = "the cat and the dog"
    assert find_word_index(text, "the", 0) == 0
    assert find_word_index(text, "the", 3) == 12


def test_case_insensitive_match():
    assert find_word_index("Hello World", "world", 0) == 6


def test_punctuation_stripped_match():
    assert find_word_index("Hello there", "Hello,", 0) == 0
    assert find_word_index("say hello there", "Hello!", 0) == 4


def test_whitespace_tolerant_match():
    assert find_word_index("你 好 世界", "你好", 0) == 0
    assert fuzzy_index("a b c", "abc") == 0
    assert fuzzy_index("xyz", "abc") == -1


def test_match_beyond_window_is_rejected():
    text = "start " + "x" * 200 + " target"
    assert find_word_index(text, "target", 0, search_window=100) == -1
    assert find_word_index(text, "target", 0, search_window=500) == text.index("target")


def test_overshoot_recovers_earlier_match():
    text = "alpha beta gamma"
    assert find_word_index(text, "beta", 12) == 6


def test_overshoot_respects_chunk_start():
    text = "beta one. beta two"
    assert find_word_index(text, "beta", 16, chunk_start=10) == 10
    assert find_word_index(text, "alpha", 16, chunk_start=10) == -1


def test_empty_word():
    assert find_word_index("anything", "", 0) == -1


def test_expand_to_token():
    assert expand_to_token("don't stop", 0, 3) == (0, 5)
    assert expand_to_token("well-known fact", 5, 5) == (0, 10)
    assert expand_to_token("plain word", 6, 4) == (6, 4)


def test_expand_leaves_cjk_alone():
    assert expand_to_token("你好世界", 0, 2) == (0, 2)
