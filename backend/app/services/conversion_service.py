from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from time import perf_counter
from typing import Protocol

from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.models.conversion_contracts import (
    ArticleContent,
    ConversionRequest,
    DocumentMetadata,
    RenderedDocument,
)
from backend.app.services.conversion_errors import ConversionError, ValidationFailure
from backend.app.services.document_renderers import DocumentRenderer
from backend.app.services.filename_sanitizer import download_filename
from backend.app.services.metadata_extractor import extract_metadata
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("url_to_kindle.conversion")


class ArticleSource(Protocol):
    def fetch(self, source_url: str) -> ArticleContent:
        ...


@dataclass(frozen=True)
class ConversionResult:
    document: RenderedDocument
    metadata: DocumentMetadata
    filename: str

    @property
    def download_name(self) -> str:
        return f"{self.filename}.{self.document.extension}"


class ConversionService:
    """Fetch, describe, name and render one article per call.

    Every format goes through the same stages; only the renderer differs.
    """

    def __init__(
        self,
        *,
        fetcher: ArticleSource,
        renderers: Mapping[str, DocumentRenderer],
        telemetry: TelemetryClient | None = None,
        strip_non_ascii_filenames: bool = False,
    ) -> None:
        self._fetcher = fetcher
        self._renderers = dict(renderers)
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._strip_non_ascii_filenames = strip_non_ascii_filenames

    @property
    def formats(self) -> tuple[str, ...]:
        return tuple(self._renderers)

    def convert(self, request: ConversionRequest) -> ConversionResult:
        renderer = self._renderers.get(request.format)
        if renderer is None:
            raise ValidationFailure(f"Unsupported format: {request.format}")

        context_tokens = bind_contextvars(
            source_url=request.source_url,
            document_format=request.format,
        )
        started_at = perf_counter()
        stage = "fetch"
        self._telemetry.emit(
            "conversion.start",
            source_url=request.source_url,
            document_format=request.format,
        )
        try:
            LOGGER.info("processing url source_url=%s format=%s", request.source_url, request.format)
            article = self._fetcher.fetch(request.source_url)

            stage = "metadata"
            metadata = extract_metadata(article.raw_text, request.source_url)
            filename = download_filename(
                metadata.title,
                strip_non_ascii=self._strip_non_ascii_filenames,
            )

            stage = "render"
            document = renderer.render(article, metadata)
        except ConversionError as exc:
            self._report_failure(request, stage=exc.stage, error=exc, started_at=started_at)
            raise
        except Exception as exc:
            self._report_failure(request, stage=stage, error=exc, started_at=started_at)
            raise
        finally:
            reset_contextvars(**context_tokens)

        duration_ms = int((perf_counter() - started_at) * 1000)
        LOGGER.info(
            "converted url source_url=%s format=%s title=%s bytes=%s duration_ms=%s",
            request.source_url,
            request.format,
            metadata.title,
            document.size,
            duration_ms,
        )
        self._telemetry.emit(
            "conversion.finish",
            source_url=request.source_url,
            document_format=request.format,
            byte_count=document.size,
            duration_ms=duration_ms,
        )
        return ConversionResult(document=document, metadata=metadata, filename=filename)

    def _report_failure(
        self,
        request: ConversionRequest,
        *,
        stage: str,
        error: Exception,
        started_at: float,
    ) -> None:
        LOGGER.error(
            "conversion failed source_url=%s format=%s stage=%s error=%s",
            request.source_url,
            request.format,
            stage,
            error,
            exc_info=not isinstance(error, ConversionError),
        )
        self._telemetry.emit(
            "conversion.error",
            source_url=request.source_url,
            document_format=request.format,
            stage=stage,
            error_type=type(error).__name__,
            duration_ms=int((perf_counter() - started_at) * 1000),
        )
