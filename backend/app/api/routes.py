from __future__ import annotations

import logging
from typing import Annotated
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from backend.app.config import AppSettings
from backend.app.dependencies import get_conversion_service, get_settings
from backend.app.models.conversion_contracts import ConversionRequest
from backend.app.services.conversion_errors import ConversionError, ValidationFailure
from backend.app.services.conversion_service import ConversionResult, ConversionService
from backend.app.services.filename_sanitizer import download_filename

LOGGER = logging.getLogger("url_to_kindle.api")

URL_REQUIRED_MESSAGE = "URL parameter is required"
ERROR_PREFIX = "Error processing URL: "

router = APIRouter()


def _decode_source_url(raw_url: str | None) -> str:
    if raw_url is None or not raw_url.strip():
        raise ValidationFailure(URL_REQUIRED_MESSAGE)
    value = raw_url.strip()
    # Clients that encode the parameter twice still arrive percent-encoded here.
    if "%" in value and "://" not in value:
        try:
            value = unquote(value, errors="strict")
        except UnicodeDecodeError as exc:
            raise ValidationFailure("URL parameter could not be decoded") from exc
    if not value.strip():
        raise ValidationFailure(URL_REQUIRED_MESSAGE)
    return value


def _build_request(
    *,
    raw_url: str | None,
    requested_format: str | None,
    settings: AppSettings,
    service: ConversionService,
) -> ConversionRequest:
    source_url = _decode_source_url(raw_url)
    format_name = (requested_format or settings.default_format).strip().lower()
    if format_name not in service.formats:
        raise ValidationFailure(
            f"Unsupported format: {format_name} (expected one of: {', '.join(service.formats)})"
        )
    try:
        return ConversionRequest(source_url=source_url, format=format_name)
    except ValidationError as exc:
        message = str(exc.errors()[0].get("msg", "Invalid URL parameter"))
        raise ValidationFailure(message.removeprefix("Value error, ")) from exc


@router.options("/convert", tags=["convert"], include_in_schema=False)
def convert_preflight() -> Response:
    return Response(status_code=204)


@router.get(
    "/convert",
    tags=["convert"],
    operation_id="convert_url",
    response_class=Response,
    responses={
        200: {"description": "The rendered document as a forced download."},
        400: {"description": "Missing or invalid URL parameter.", "content": {"text/plain": {}}},
        500: {"description": "Fetching or rendering failed.", "content": {"text/plain": {}}},
    },
)
def convert_url(
    settings: Annotated[AppSettings, Depends(get_settings)],
    service: Annotated[ConversionService, Depends(get_conversion_service)],
    url: Annotated[str | None, Query(description="Article URL (URL-encoded).")] = None,
    format: Annotated[
        str | None,
        Query(description="Output format: epub, html or pdf. Defaults to the configured format."),
    ] = None,
) -> Response:
    try:
        request = _build_request(
            raw_url=url,
            requested_format=format,
            settings=settings,
            service=service,
        )
    except ValidationFailure as exc:
        LOGGER.info("rejected conversion request reason=%s", exc)
        return PlainTextResponse(str(exc), status_code=400)

    try:
        result = service.convert(request)
    except ValidationFailure as exc:
        return PlainTextResponse(str(exc), status_code=400)
    except ConversionError as exc:
        return PlainTextResponse(f"{ERROR_PREFIX}{exc}", status_code=500)
    except Exception as exc:
        # Already logged and reported by the conversion service.
        return PlainTextResponse(f"{ERROR_PREFIX}{exc}", status_code=500)

    return Response(
        content=result.document.content,
        media_type=result.document.media_type,
        headers={"Content-Disposition": _content_disposition(result)},
    )


def _content_disposition(result: ConversionResult) -> str:
    download_name = result.download_name
    if download_name.isascii():
        return f"attachment; filename={download_name}"
    # Header values are latin-1 on the wire; non-ASCII names go in the RFC 6266 form.
    fallback = download_filename(result.metadata.title, strip_non_ascii=True)
    return (
        f"attachment; filename={fallback}.{result.document.extension}; "
        f"filename*=UTF-8''{quote(download_name, safe='')}"
    )
