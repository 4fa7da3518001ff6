"""
Unit tests for text chunking.

Tests boundary preference, size limits and exact reconstruction.
"""

import pytest

from tts_player.core.chunker import SENTENCE_ENDINGS, TextChunk, split_text


def _texts(chunks):
    return [chunk.text for chunk in chunks]


def _assert_invariants(text, chunks, max_size):
    assert "".join(_texts(chunks)) == text
    assert all(0 < len(chunk.text) <= max_size for chunk in chunks)
    assert [chunk.index for chunk in chunks] == list(range(len(chunks)))


class TestSplitBasics:
    """Test simple inputs."""

    def test_short_text_single_chunk(self):
        """Text under the limit yields exactly one chunk."""
        chunks = split_text("Hello world. How are you?", 100)
        assert chunks == [TextChunk(index=0, start=0, text="Hello world. How are you?")]

    def test_empty_text_no_chunks(self):
        """Empty input yields no chunks at all."""
        assert split_text("", 10) == []

    def test_exact_boundary_no_trailing_empty_chunk(self):
        """Text exactly at the limit yields one chunk."""
        text = "a" * 50
        chunks = split_text(text, 50)
        assert len(chunks) == 1
        assert chunks[0].text == text

    def test_invalid_max_size(self):
        """Non-positive limits are rejected."""
        with pytest.raises(ValueError, match="max_chunk_size must be > 0"):
            split_text("Hello", 0)
        with pytest.raises(ValueError):
            split_text("Hello", -5)

    def test_default_delimiters(self):
        """Default delimiters cover period, exclamation and question marks."""
        assert ". " in SENTENCE_ENDINGS
        assert "?\n" in SENTENCE_ENDINGS


class TestSentencePacking:
    """Test sentence boundary preference."""

    def test_splits_at_sentence_boundaries(self):
        """Sentences are never cut when they fit."""
        text = "One two three. Four five six. Seven eight nine."
        chunks = split_text(text, 30)
        assert _texts(chunks) == ["One two three. Four five six. ", "Seven eight nine."]
        _assert_invariants(text, chunks, 30)

    def test_packs_multiple_sentences(self):
        """Several short sentences share a chunk."""
        text = "A. B. C. D. E. F."
        chunks = split_text(text, 6)
        assert _texts(chunks) == ["A. B. ", "C. D. ", "E. F."]

    def test_newline_delimiters(self):
        """Sentence endings followed by a newline count as boundaries."""
        text = "First line!\nSecond line?\nThird."
        chunks = split_text(text, 14)
        assert _texts(chunks) == ["First line!\n", "Second line?\n", "Third."]

    def test_chunk_start_offsets(self):
        """Each chunk's start is its offset in the original text."""
        text = "One two three. Four five six. Seven eight nine."
        for chunk in split_text(text, 20):
            assert text[chunk.start:chunk.start + len(chunk.text)] == chunk.text

    def test_custom_delimiters(self):
        """Custom delimiters replace the defaults."""
        text = "alpha; beta; gamma"
        chunks = split_text(text, 8, delimiters=("; ",))
        assert _texts(chunks) == ["alpha; ", "beta; ", "gamma"]

    def test_no_delimiters_rejected(self):
        """An empty delimiter set is a configuration error."""
        with pytest.raises(ValueError):
            split_text("text", 10, delimiters=())


class TestWordFallback:
    """Test splitting of sentences longer than the limit."""

    def test_long_sentence_split_on_words(self):
        """An overlong sentence is packed word by word."""
        text = "the quick brown fox jumps over the lazy dog"
        chunks = split_text(text, 10)
        _assert_invariants(text, chunks, 10)
        for chunk in chunks[:-1]:
            assert chunk.text.endswith(" ")

    def test_whitespace_preserved(self):
        """Runs of whitespace survive the word fallback."""
        text = "  lots   of    spaces\there\n\nand more words in this sentence"
        chunks = split_text(text, 12)
        _assert_invariants(text, chunks, 12)

    def test_single_word_longer_than_limit(self):
        """A word longer than the limit is cut at the limit."""
        text = "x" * 25
        chunks = split_text(text, 10)
        assert _texts(chunks) == ["x" * 10, "x" * 10, "x" * 5]

    def test_long_sentence_starts_new_chunk(self):
        """Pending short sentences are emitted before an overlong one."""
        text = "Hi. " + "word " * 10
        chunks = split_text(text, 12)
        assert chunks[0].text == "Hi. "
        _assert_invariants(text, chunks, 12)


class TestProperties:
    """Test invariants across a range of inputs."""

    @pytest.mark.parametrize("max_size", [1, 2, 3, 7, 16, 50, 200])
    def test_reconstruction_and_limits(self, max_size):
        """Joined chunks equal the input and none exceed the limit."""
        text = (
            "Hello there! This is a test.  It has   odd spacing.\n"
            "Does it work? Yes.\nSupercalifragilisticexpialidocious words too. End"
        )
        chunks = split_text(text, max_size)
        _assert_invariants(text, chunks, max_size)

    def test_idempotent(self):
        """Splitting twice gives identical sequences."""
        text = "Sentence one. Sentence two! Sentence three? " * 40
        assert split_text(text, 120) == split_text(text, 120)

    def test_long_document_chunk_count(self):
        """9,500 characters of 50-character sentences at 3,800 yields 3 chunks."""
        sentence = "x" * 48 + ". "
        text = sentence * 190
        assert len(text) == 9500

        chunks = split_text(text, 3800)
        assert [len(chunk.text) for chunk in chunks] == [3800, 3800, 1900]
        _assert_invariants(text, chunks, 3800)
