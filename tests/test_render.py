"""Tests for markdown rendering, sanitization and citation lists."""

from studypack.services.generation import (
    FullTextResult,
    GroundedBullet,
    GroundedSection,
    HighYieldResult,
)
from studypack.services.render import (
    fulltext_citations,
    fulltext_markdown,
    high_yield_citations,
    high_yield_markdown,
    render_html,
    sanitize_html,
)

FULL = FullTextResult(
    title="",
    sections=[
        GroundedSection(title="Intro", content_md="Some *text*.", chunk_ids=["c1"], quote_snippets=["q1"]),
        GroundedSection(title="More", content_md="Body.", chunk_ids=["c1", "c2"], quote_snippets=["q2"]),
    ],
)
HIGH = HighYieldResult(
    title="HY",
    bullets=[
        GroundedBullet(text="First", chunk_ids=["c1"], quote_snippets=["q"]),
        GroundedBullet(text="Second", chunk_ids=["c2"], quote_snippets=["r"]),
    ],
)


def test_sanitize_removes_script_blocks():
    html = '<p>ok</p><script type="text/javascript">alert(1)</script><SCRIPT>x</SCRIPT>'
    assert sanitize_html(html) == "<p>ok</p>"


def test_sanitize_removes_event_handlers_both_quote_styles():
    html = "<img src=\"a.png\" onerror=\"alert(1)\"><a href='#' onClick='go()'>x</a>"
    assert sanitize_html(html) == "<img src=\"a.png\"><a href='#'>x</a>"


def test_sanitize_removes_unquoted_handlers_and_unclosed_scripts():
    assert sanitize_html("<img src=x onerror=alert(1)>") == "<img src=x>"
    assert sanitize_html("<p>a</p><script src=\"evil.js\">") == "<p>a</p>"


def test_render_html_converts_and_sanitizes():
    html = render_html("# Title\n\nText <span onmouseover=\"x()\">hi</span>")
    assert "<h1>Title</h1>" in html
    assert "onmouseover" not in html
    assert "<span>hi</span>" in html


def test_fulltext_markdown_uses_fallback_title():
    md = fulltext_markdown(FULL, "Pack title")
    assert md == "# Pack title\n\n## Intro\n\nSome *text*.\n\n## More\n\nBody."


def test_high_yield_markdown_lists_bullets():
    assert high_yield_markdown(HIGH, "Pack") == "# HY\n\n- First\n- Second"
    html = render_html(high_yield_markdown(HIGH, "Pack"))
    assert "<li>First</li>" in html


def test_fulltext_citations_per_section():
    assert fulltext_citations(FULL) == [
        {"section_title": "Intro", "chunk_ids": ["c1"], "quote_snippets": ["q1"]},
        {"section_title": "More", "chunk_ids": ["c1", "c2"], "quote_snippets": ["q2"]},
    ]


def test_high_yield_citations_are_labelled_by_bullet():
    labels = [c["section_title"] for c in high_yield_citations(HIGH)]
    assert labels == ["Bullet 1", "Bullet 2"]
