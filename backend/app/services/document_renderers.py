from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Protocol

import markdown2
from ebooklib import epub

from backend.app.models.conversion_contracts import (
    ArticleContent,
    DocumentMetadata,
    RenderedDocument,
)
from backend.app.services.conversion_errors import RenderFailure

LOGGER = logging.getLogger("url_to_kindle.renderers")

MARKDOWN_EXTRAS: tuple[str, ...] = ("fenced-code-blocks", "cuddled-lists", "tables", "strike")
EPUB_MEDIA_TYPE = "application/epub+zip"
HTML_MEDIA_TYPE = "text/html; charset=utf-8"
EPUB_SECTION_TITLE = "Main Content"
EPUB_CONTENTS_TITLE = "Web Capture"


class DocumentRenderer(Protocol):
    format_name: str

    def render(self, content: ArticleContent, metadata: DocumentMetadata) -> RenderedDocument:
        ...


def markdown_to_html(markdown_text: str) -> str:
    return str(markdown2.markdown(markdown_text, extras=list(MARKDOWN_EXTRAS)))


class EpubRenderer:
    format_name = "epub"

    def __init__(self, *, language: str = "en", cover_path: Path | None = None) -> None:
        self._language = language
        self._cover_path = cover_path

    def render(self, content: ArticleContent, metadata: DocumentMetadata) -> RenderedDocument:
        LOGGER.info("rendering epub title=%s", metadata.title)
        try:
            book = self._build_book(content, metadata)
            buffer = BytesIO()
            epub.write_epub(buffer, book, {})
        except Exception as exc:
            raise RenderFailure(f"Generation failed: {exc}") from exc
        return RenderedDocument(
            content=buffer.getvalue(),
            media_type=EPUB_MEDIA_TYPE,
            extension="epub",
        )

    def _build_book(self, content: ArticleContent, metadata: DocumentMetadata) -> epub.EpubBook:
        book = epub.EpubBook()
        book.set_identifier(metadata.source_url)
        book.set_title(metadata.title)
        book.set_language(self._language)
        book.add_author(metadata.author)
        book.add_metadata("DC", "description", f"Converted from {metadata.source_url}")
        if self._cover_path is not None:
            book.set_cover(
                f"cover{self._cover_path.suffix.lower()}",
                self._cover_path.read_bytes(),
            )

        chapter = epub.EpubHtml(
            title=EPUB_SECTION_TITLE,
            file_name="content.xhtml",
            lang=self._language,
        )
        chapter.content = markdown_to_html(content.raw_text)
        book.add_item(chapter)

        nav = epub.EpubNav()
        nav.title = EPUB_CONTENTS_TITLE
        book.toc = [chapter]
        book.add_item(epub.EpubNcx())
        book.add_item(nav)
        book.spine = ["nav", chapter]
        return book


class FrontmatterHtmlRenderer:
    """Markdown rendered to an HTML fragment headed by its title/author block."""

    format_name = "html"

    def render(self, content: ArticleContent, metadata: DocumentMetadata) -> RenderedDocument:
        LOGGER.info("rendering html title=%s", metadata.title)
        try:
            html = markdown_to_html(with_frontmatter(content.raw_text, metadata))
        except Exception as exc:
            raise RenderFailure(f"Generation failed: {exc}") from exc
        return RenderedDocument(
            content=html.encode("utf-8"),
            media_type=HTML_MEDIA_TYPE,
            extension="html",
        )


def with_frontmatter(raw_text: str, metadata: DocumentMetadata) -> str:
    return f"---\ntitle: {metadata.title}\nauthor: {metadata.author}\n---\n\n{raw_text}"
