from __future__ import annotations

import base64
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Any, Protocol

from playwright.sync_api import Browser
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from backend.app.models.conversion_contracts import (
    ArticleContent,
    DocumentMetadata,
    RenderedDocument,
)
from backend.app.services.conversion_errors import FontAssetMissingError, RenderFailure
from backend.app.services.document_renderers import markdown_to_html

LOGGER = logging.getLogger("url_to_kindle.pdf_renderer")

PDF_MEDIA_TYPE = "application/pdf"
PDF_PAGE_FORMAT = "A4"
PDF_MARGINS: dict[str, str] = {
    "top": "20mm",
    "bottom": "20mm",
    "left": "15mm",
    "right": "15mm",
}
_FONT_FORMATS: dict[str, tuple[str, str]] = {
    ".ttf": ("font/ttf", "truetype"),
    ".otf": ("font/otf", "opentype"),
    ".woff": ("font/woff", "woff"),
    ".woff2": ("font/woff2", "woff2"),
}

_STYLESHEET = """
    html { -webkit-print-color-adjust: exact; }
    body {
        font-family: var(--body-font), Georgia, serif;
        font-size: 12pt;
        line-height: 1.6;
        color: #1a1a1a;
        max-width: 100%;
        margin: 0;
        padding: 0;
    }
    h1, h2, h3, h4, h5, h6 {
        line-height: 1.25;
        margin: 1.4em 0 0.6em;
        page-break-after: avoid;
    }
    h1 { font-size: 1.9em; margin-top: 0; }
    h2 { font-size: 1.5em; }
    h3 { font-size: 1.25em; }
    p { margin: 0 0 0.9em; text-align: justify; hyphens: auto; }
    a { color: #1a4d8f; text-decoration: none; word-break: break-word; }
    .byline {
        color: #555;
        font-size: 0.9em;
        margin: 0 0 2em;
        padding-bottom: 0.8em;
        border-bottom: 1px solid #ddd;
    }
    code {
        font-family: "SFMono-Regular", Consolas, "Liberation Mono", Menlo, monospace;
        font-size: 0.85em;
        background: #f4f4f4;
        padding: 0.1em 0.3em;
        border-radius: 3px;
    }
    pre {
        background: #f4f4f4;
        padding: 0.8em 1em;
        border-radius: 4px;
        white-space: pre-wrap;
        word-wrap: break-word;
        page-break-inside: avoid;
    }
    pre code { background: none; padding: 0; font-size: 0.8em; }
    blockquote {
        margin: 1em 0;
        padding: 0.2em 1em;
        border-left: 4px solid #ccc;
        color: #444;
        font-style: italic;
    }
    img {
        max-width: 100%;
        height: auto;
        display: block;
        margin: 1em auto;
        page-break-inside: avoid;
    }
    table { border-collapse: collapse; width: 100%; margin: 1em 0; font-size: 0.9em; }
    th, td { border: 1px solid #ddd; padding: 0.4em 0.6em; text-align: left; }
    hr { border: none; border-top: 1px solid #ddd; margin: 2em 0; }
"""


@dataclass(frozen=True)
class FontAsset:
    family: str
    media_type: str
    css_format: str
    base64_data: str

    def font_face(self) -> str:
        return (
            "@font-face {\n"
            f'    font-family: "{self.family}";\n'
            f'    src: url("data:{self.media_type};base64,{self.base64_data}") '
            f'format("{self.css_format}");\n'
            "    font-weight: normal;\n"
            "    font-style: normal;\n"
            "}\n"
        )


def load_font_asset(path: Path, *, family: str) -> FontAsset:
    if not path.is_file():
        raise FontAssetMissingError(path)
    media_type, css_format = _FONT_FORMATS.get(path.suffix.lower(), ("font/ttf", "truetype"))
    return FontAsset(
        family=family,
        media_type=media_type,
        css_format=css_format,
        base64_data=base64.b64encode(path.read_bytes()).decode("ascii"),
    )


class BrowserFactory(Protocol):
    def open(self) -> Any:
        """Return a context manager yielding a browser that is closed on exit."""
        ...


class PlaywrightBrowserFactory:
    def __init__(
        self,
        *,
        executable_path: str | None = None,
        launch_args: Sequence[str] = (),
    ) -> None:
        self._executable_path = executable_path
        self._launch_args = list(launch_args)

    @contextmanager
    def open(self) -> Iterator[Browser]:
        with sync_playwright() as playwright:
            browser = playwright.chromium.launch(
                headless=True,
                executable_path=self._executable_path,
                args=self._launch_args,
            )
            LOGGER.debug("browser launched version=%s", browser.version)
            try:
                yield browser
            finally:
                browser.close()
                LOGGER.debug("browser closed")


class StyledPdfRenderer:
    format_name = "pdf"

    def __init__(
        self,
        *,
        font: FontAsset,
        browser_factory: BrowserFactory,
        content_timeout_seconds: float = 30.0,
        preview_chars: int = 200,
    ) -> None:
        self._font = font
        self._browser_factory = browser_factory
        self._content_timeout_ms = max(1.0, content_timeout_seconds) * 1000
        self._preview_chars = max(0, preview_chars)

    def build_html(self, content: ArticleContent, metadata: DocumentMetadata) -> str:
        body_html = markdown_to_html(content.raw_text)
        title = escape(metadata.title)
        return (
            "<!DOCTYPE html>\n"
            '<html lang="en">\n'
            "<head>\n"
            '<meta charset="utf-8">\n'
            '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
            f"<title>{title}</title>\n"
            "<style>\n"
            f"{self._font.font_face()}"
            f':root {{ --body-font: "{self._font.family}"; }}\n'
            f"{_STYLESHEET}"
            "</style>\n"
            "</head>\n"
            "<body>\n"
            f"<h1>{title}</h1>\n"
            f'<p class="byline">Source: {escape(metadata.author)}</p>\n'
            f"{body_html}\n"
            "</body>\n"
            "</html>\n"
        )

    def render(self, content: ArticleContent, metadata: DocumentMetadata) -> RenderedDocument:
        try:
            document_html = self.build_html(content, metadata)
        except Exception as exc:
            raise RenderFailure(f"Generation failed: {exc}") from exc

        LOGGER.info("rendering pdf title=%s html_chars=%s", metadata.title, len(document_html))
        try:
            with self._browser_factory.open() as browser:
                pdf_bytes = self._print(browser, document_html)
        except PlaywrightTimeoutError as exc:
            raise RenderFailure(f"Timed out printing PDF: {exc}") from exc
        except RenderFailure:
            raise
        except Exception as exc:
            raise RenderFailure(f"PDF generation failed: {exc}") from exc

        if not pdf_bytes:
            raise RenderFailure("PDF generation produced no output")
        return RenderedDocument(content=pdf_bytes, media_type=PDF_MEDIA_TYPE, extension="pdf")

    def _print(self, browser: Any, document_html: str) -> bytes:
        page = browser.new_page()
        try:
            try:
                page.set_content(
                    document_html,
                    wait_until="networkidle",
                    timeout=self._content_timeout_ms,
                )
            except PlaywrightTimeoutError as exc:
                raise RenderFailure(
                    f"Timed out loading PDF content after {self._content_timeout_ms / 1000:g}s"
                ) from exc
            if self._preview_chars and LOGGER.isEnabledFor(logging.DEBUG):
                preview = page.inner_text("body")[: self._preview_chars]
                LOGGER.debug("pdf body preview=%r", preview)
            return page.pdf(
                format=PDF_PAGE_FORMAT,
                print_background=True,
                margin=PDF_MARGINS,
            )
        finally:
            page.close()
