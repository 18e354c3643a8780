"""Unit tests for the chunking service."""

from studypack.services.chunking import chunk_text, normalize_text, split_paragraphs


def test_normalize_collapses_whitespace():
    raw = "  Hello   world  \n\n\n\n  foo  "
    result = normalize_text(raw)
    assert result == "Hello world\n\nfoo"


def test_normalize_collapses_blank_lines_with_spaces():
    assert normalize_text("a\n \n \n \nb") == "a\n\nb"


def test_normalize_strips_control_chars():
    raw = "Hello\x00\x01World"
    assert normalize_text(raw) == "HelloWorld"


def test_split_paragraphs_drops_empty():
    assert split_paragraphs("one\n\n\n\ntwo\n  \nthree") == ["one", "two", "three"]


def test_chunk_empty_returns_empty():
    assert chunk_text("") == []
    assert chunk_text("   \n\n  ") == []


def test_three_short_paragraphs_make_one_chunk():
    text = "A" * 90 + "\n\n" + "B" * 90 + "\n\n" + "C" * 90
    chunks = chunk_text(text, chunk_size=1600)
    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].content == "\n\n".join(["A" * 90, "B" * 90, "C" * 90])
    assert chunks[0].char_count == len(chunks[0].content)


def test_chunk_respects_size_target():
    paragraphs = [f"Paragraph {i}. " + "word " * 30 for i in range(40)]
    chunks = chunk_text("\n\n".join(paragraphs), chunk_size=400)
    assert len(chunks) > 1
    for chunk in chunks:
        assert chunk.char_count <= 400


def test_long_paragraph_is_emitted_whole():
    long_para = "x" * 2000
    chunks = chunk_text(f"short\n\n{long_para}\n\ntail", chunk_size=1600)
    assert [c.content for c in chunks] == ["short", long_para, "tail"]


def test_chunk_count_is_capped():
    text = "\n\n".join(f"para {i} " + "y" * 50 for i in range(500))
    chunks = chunk_text(text, chunk_size=60, max_chunks=200)
    assert len(chunks) == 200
    assert chunks[-1].index == 199


def test_chunks_preserve_document_order():
    paragraphs = [f"Paragraph number {i} with some text." for i in range(100)]
    text = "\n\n".join(paragraphs)
    chunks = chunk_text(text, chunk_size=200, max_chunks=10)

    rebuilt = "\n\n".join(c.content for c in chunks)
    assert text.startswith(rebuilt)
    assert [c.index for c in chunks] == list(range(len(chunks)))
