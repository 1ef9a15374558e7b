from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from backend.app.models.conversion_contracts import ArticleContent, DocumentMetadata
from backend.app.services.conversion_errors import RenderFailure
from backend.app.services.document_renderers import (
    EpubRenderer,
    FrontmatterHtmlRenderer,
    markdown_to_html,
    with_frontmatter,
)

ARTICLE = ArticleContent(
    raw_text=(
        "Title: Hello\n\n"
        "Markdown Content:\n\n"
        "Some **bold** text.\n\n"
        "```\nprint('hi')\n```\n\n"
        "> quoted line\n"
    )
)
METADATA = DocumentMetadata(
    title="Hello",
    author="example.com",
    source_url="https://example.com/a",
)

_PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _read_epub(content: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


def _find(entries: dict[str, bytes], suffix: str) -> bytes:
    return next(value for name, value in entries.items() if name.endswith(suffix))


def test_markdown_to_html_handles_fenced_code_and_quotes() -> None:
    html = markdown_to_html(ARTICLE.raw_text)

    assert "<strong>bold</strong>" in html
    assert "<code>" in html
    assert "<blockquote>" in html


def test_epub_renderer_packages_single_section() -> None:
    document = EpubRenderer(language="en").render(ARTICLE, METADATA)

    assert document.media_type == "application/epub+zip"
    assert document.extension == "epub"
    entries = _read_epub(document.content)
    assert entries["mimetype"] == b"application/epub+zip"

    section = _find(entries, "content.xhtml").decode("utf-8")
    assert "<strong>bold</strong>" in section

    package = _find(entries, ".opf").decode("utf-8")
    assert "<dc:title>Hello</dc:title>" in package
    assert "example.com" in package
    assert "Converted from https://example.com/a" in package
    assert "https://example.com/a" in package


def test_epub_renderer_embeds_configured_cover(tmp_path: Path) -> None:
    cover_path = tmp_path / "cover.png"
    cover_path.write_bytes(_PNG_BYTES)

    document = EpubRenderer(cover_path=cover_path).render(ARTICLE, METADATA)

    entries = _read_epub(document.content)
    assert any(name.endswith("cover.png") for name in entries)


def test_epub_renderer_wraps_failures(tmp_path: Path) -> None:
    renderer = EpubRenderer(cover_path=tmp_path / "missing.png")

    with pytest.raises(RenderFailure) as exc_info:
        renderer.render(ARTICLE, METADATA)

    assert str(exc_info.value).startswith("Generation failed:")
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_frontmatter_html_renderer_prepends_provenance() -> None:
    document = FrontmatterHtmlRenderer().render(ARTICLE, METADATA)

    assert document.media_type == "text/html; charset=utf-8"
    assert document.extension == "html"
    html = document.content.decode("utf-8")
    assert "title: Hello" in html
    assert "author: example.com" in html
    assert html.index("author: example.com") < html.index("<strong>bold</strong>")
    assert "<html" not in html
    assert "<style" not in html


def test_with_frontmatter_layout() -> None:
    assert with_frontmatter("Body", METADATA) == (
        "---\ntitle: Hello\nauthor: example.com\n---\n\nBody"
    )
