from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, cast

import pytest
import structlog
from fastapi.testclient import TestClient

from backend.app.config import BUNDLED_FONT_PATH, AppSettings, load_settings
from backend.app.dependencies import get_conversion_service, get_settings
from backend.app.logging_config import (
    TELEMETRY_LOG_FILE_NAME,
    _stream_supports_color,  # pyright: ignore[reportPrivateUsage]
    configure_application_logging,
)
from backend.app.main import create_app
from backend.app.scripts.convert_url import main as convert_url
from backend.app.scripts.export_openapi import main as export_openapi
from backend.app.services.conversion_errors import FontAssetMissingError
from backend.app.services.conversion_service import ConversionService
from backend.app.services.document_renderers import FrontmatterHtmlRenderer
from tests.fakes import FakeBrowserFactory, FakeFetcher, build_fake_service


def test_config_defaults_and_path_resolution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("URL_TO_KINDLE_DATA_DIR", str(tmp_path / "data"))

    settings = load_settings()

    assert settings.data_dir == (tmp_path / "data").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()
    assert settings.default_format == "epub"
    assert settings.enabled_formats == ["epub", "html", "pdf"]
    assert settings.extraction_base_url == "https://r.jina.ai"
    assert settings.pdf_font_path == BUNDLED_FONT_PATH
    assert settings.pdf_content_timeout_seconds == 30.0
    assert settings.filename_strip_non_ascii is False


def test_config_parses_comma_separated_lists(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("URL_TO_KINDLE_ENABLED_FORMATS", "HTML, epub")
    monkeypatch.setenv("URL_TO_KINDLE_DEFAULT_FORMAT", "Html")
    monkeypatch.setenv("URL_TO_KINDLE_CORS_ALLOWED_ORIGINS", "https://a.test, https://b.test")
    monkeypatch.setenv("URL_TO_KINDLE_PDF_BROWSER_ARGS", "--no-sandbox")
    monkeypatch.setenv("URL_TO_KINDLE_EXTRACTION_BASE_URL", "https://reader.test/ ")
    monkeypatch.setenv("URL_TO_KINDLE_FILENAME_STRIP_NON_ASCII", "yes")

    settings = load_settings()

    assert settings.enabled_formats == ["html", "epub"]
    assert settings.default_format == "html"
    assert settings.cors_allowed_origins == ["https://a.test", "https://b.test"]
    assert settings.pdf_browser_args == ["--no-sandbox"]
    assert settings.extraction_base_url == "https://reader.test"
    assert settings.filename_strip_non_ascii is True


def test_config_missing_pdf_font_is_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("URL_TO_KINDLE_PDF_FONT_PATH", str(tmp_path / "missing.ttf"))

    with pytest.raises(ValueError, match="Missing PDF font asset"):
        load_settings()

    monkeypatch.setenv("URL_TO_KINDLE_ENABLED_FORMATS", "epub,html")
    assert load_settings().pdf_font_path == (tmp_path / "missing.ttf").resolve()


def test_config_default_format_must_be_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("URL_TO_KINDLE_ENABLED_FORMATS", "html")
    monkeypatch.setenv("URL_TO_KINDLE_DEFAULT_FORMAT", "pdf")

    with pytest.raises(ValueError, match="is not in URL_TO_KINDLE_ENABLED_FORMATS"):
        load_settings()


def test_lifespan_fails_when_font_asset_disappears(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    font_path = tmp_path / "Deployed.ttf"
    font_path.write_bytes(BUNDLED_FONT_PATH.read_bytes())
    monkeypatch.setenv("URL_TO_KINDLE_PDF_FONT_PATH", str(font_path))

    app = create_app()
    assert get_settings().pdf_font_path == font_path.resolve()
    font_path.unlink()

    with pytest.raises(FontAssetMissingError):
        with TestClient(app):
            pass


def test_lifespan_skips_pdf_renderer_when_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("URL_TO_KINDLE_ENABLED_FORMATS", "epub,html")
    get_settings.cache_clear()

    app = create_app()
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        response = client.get(
            "/convert",
            params={"url": "https://example.com/a", "format": "pdf"},
        )

    assert response.status_code == 400
    assert response.text.startswith("Unsupported format: pdf")
    assert get_conversion_service().formats == ("epub", "html")


def _settings_for_logging(tmp_path: Path) -> AppSettings:
    return AppSettings(
        data_dir=tmp_path,
        log_dir=tmp_path / "logs",
        log_level="INFO",
    )


def test_configure_application_logging_creates_file(tmp_path: Path) -> None:
    settings = _settings_for_logging(tmp_path)
    paths = configure_application_logging(settings)
    logger = logging.getLogger("url_to_kindle.test")
    logger.info("runtime-log-test")
    structlog.get_logger("url_to_kindle.telemetry").info(
        "telemetry",
        telemetry_event="test.event",
    )

    app_logger = logging.getLogger("url_to_kindle")
    assert len(app_logger.handlers) == 2
    levels = {handler.level for handler in app_logger.handlers}
    assert logging.INFO in levels
    assert logging.DEBUG in levels
    for handler in app_logger.handlers:
        handler.flush()

    telemetry_logger = logging.getLogger("url_to_kindle.telemetry")
    assert telemetry_logger.propagate is False
    assert len(telemetry_logger.handlers) == 1
    for handler in telemetry_logger.handlers:
        handler.flush()

    assert logging.getLogger("ebooklib").level == logging.WARNING

    assert paths.log_file.exists()
    parsed_events = [
        json.loads(line)
        for line in paths.log_file.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    runtime_event = next(
        event for event in parsed_events if event.get("event") == "runtime-log-test"
    )
    assert runtime_event["logger"] == "url_to_kindle.test"
    assert runtime_event["level"] == "info"
    assert runtime_event["pathname"]
    assert runtime_event["lineno"]
    assert all(event.get("telemetry_event") != "test.event" for event in parsed_events)

    assert paths.telemetry_log_file == settings.log_dir / TELEMETRY_LOG_FILE_NAME
    telemetry_events = [
        json.loads(line)
        for line in paths.telemetry_log_file.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    telemetry_event = next(
        event for event in telemetry_events if event.get("telemetry_event") == "test.event"
    )
    assert telemetry_event["logger"] == "url_to_kindle.telemetry"


def test_stream_supports_color_detects_tty() -> None:
    class _TTY:
        def isatty(self) -> bool:
            return True

    class _Pipe:
        def isatty(self) -> bool:
            return False

    class _Broken:
        def isatty(self) -> bool:
            raise RuntimeError("boom")

    assert _stream_supports_color(_TTY()) is True
    assert _stream_supports_color(_Pipe()) is False
    assert _stream_supports_color(_Broken()) is False
    assert _stream_supports_color(object()) is False


def test_export_openapi_writes_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    export_openapi([])

    output = tmp_path / "openapi" / "openapi.json"
    assert output.exists()

    schema = cast(dict[str, Any], json.loads(output.read_text(encoding="utf-8")))
    assert schema["info"]["title"] == "URL to Kindle API"
    assert "/convert" in schema["paths"]
    assert "/health" in schema["paths"]


def test_convert_url_script_writes_document(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    fetcher = FakeFetcher()
    service = build_fake_service(fetcher, FakeBrowserFactory())
    monkeypatch.setattr("backend.app.scripts.convert_url.get_conversion_service", lambda: service)

    exit_code = convert_url(
        ["https://example.com/a", "--format", "html", "--output-dir", str(tmp_path / "out")]
    )

    assert exit_code == 0
    written = tmp_path / "out" / "hello.html"
    assert written.exists()
    assert b"Body text" in written.read_bytes()
    assert "Wrote" in capsys.readouterr().out


def test_convert_url_script_reports_invalid_url(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    fetcher = FakeFetcher()
    service = build_fake_service(fetcher, FakeBrowserFactory())
    monkeypatch.setattr("backend.app.scripts.convert_url.get_conversion_service", lambda: service)

    exit_code = convert_url(["not-a-url"])

    assert exit_code == 2
    assert "Invalid URL" in capsys.readouterr().err
    assert fetcher.calls == []


def test_convert_url_script_rejects_disabled_format(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    fetcher = FakeFetcher()
    service = ConversionService(fetcher=fetcher, renderers={"html": FrontmatterHtmlRenderer()})
    monkeypatch.setattr("backend.app.scripts.convert_url.get_conversion_service", lambda: service)

    exit_code = convert_url(["https://example.com/a", "--format", "pdf"])

    assert exit_code == 2
    assert "Invalid request: Unsupported format: pdf" in capsys.readouterr().err
    assert fetcher.calls == []
