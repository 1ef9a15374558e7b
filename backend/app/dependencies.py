from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.services.content_fetcher import ContentFetcher
from backend.app.services.conversion_service import ConversionService
from backend.app.services.document_renderers import (
    DocumentRenderer,
    EpubRenderer,
    FrontmatterHtmlRenderer,
)
from backend.app.services.pdf_renderer import (
    PlaywrightBrowserFactory,
    StyledPdfRenderer,
    load_font_asset,
)
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_content_fetcher() -> ContentFetcher:
    settings = get_settings()
    return ContentFetcher(
        base_url=settings.extraction_base_url,
        response_format=settings.extraction_response_format,
        timeout_seconds=settings.fetch_timeout_seconds,
        user_agent=settings.user_agent,
        api_key=settings.extraction_api_key,
    )


@lru_cache(maxsize=1)
def get_pdf_renderer() -> StyledPdfRenderer:
    # Reads and encodes the font once; a missing asset fails here at startup.
    settings = get_settings()
    return StyledPdfRenderer(
        font=load_font_asset(settings.pdf_font_path, family=settings.pdf_font_family),
        browser_factory=PlaywrightBrowserFactory(
            executable_path=settings.pdf_browser_executable_path,
            launch_args=settings.pdf_browser_args,
        ),
        content_timeout_seconds=settings.pdf_content_timeout_seconds,
        preview_chars=settings.pdf_preview_chars,
    )


def build_renderers(settings: AppSettings) -> dict[str, DocumentRenderer]:
    renderers: dict[str, DocumentRenderer] = {}
    for format_name in settings.enabled_formats:
        if format_name == "epub":
            renderers["epub"] = EpubRenderer(
                language=settings.epub_language,
                cover_path=settings.epub_cover_path,
            )
        elif format_name == "html":
            renderers["html"] = FrontmatterHtmlRenderer()
        elif format_name == "pdf":
            renderers["pdf"] = get_pdf_renderer()
    return renderers


@lru_cache(maxsize=1)
def get_conversion_service() -> ConversionService:
    settings = get_settings()
    return ConversionService(
        fetcher=get_content_fetcher(),
        renderers=build_renderers(settings),
        telemetry=get_telemetry(),
        strip_non_ascii_filenames=settings.filename_strip_non_ascii,
    )


def reset_cached_dependencies() -> None:
    get_conversion_service.cache_clear()
    get_pdf_renderer.cache_clear()
    get_content_fetcher.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
