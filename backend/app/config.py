from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATA_DIR = ".url-to-kindle"
DOCUMENT_FORMATS: frozenset[str] = frozenset({"epub", "html", "pdf"})
BUNDLED_FONT_PATH = Path(__file__).resolve().parent / "assets" / "fonts" / "Lato-Regular.ttf"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (("log_dir", Path("logs")),)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    "pdf_font_path",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "telemetry_enabled",
    "filename_strip_non_ascii",
)

DocumentFormat = Literal["epub", "html", "pdf"]


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{URL_TO_KINDLE_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    This class is the single source of truth for config options:
    - what each option controls,
    - where it comes from (`URL_TO_KINDLE_*`),
    - and what its default is.
    """

    model_config = SettingsConfigDict(
        env_prefix="URL_TO_KINDLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for logs and other local artifacts.",
    )

    # Hosting.
    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "https://url-to-kindle.web.app",
            "https://url-to-kindle.hannes.cool",
        ],
        description="Origins allowed to call `/convert` from a browser (comma separated in env).",
    )

    # Content extraction.
    extraction_base_url: str = Field(
        default="https://r.jina.ai",
        description="Base URL of the reader service; the article URL is appended as the path.",
    )
    extraction_response_format: str = Field(
        default="markdown",
        description="Value sent in the `X-Respond-With` header to request normalized text.",
    )
    extraction_api_key: str | None = Field(
        default=None,
        description="Optional bearer token for the reader service.",
    )
    fetch_timeout_seconds: float = Field(
        default=20.0,
        description="HTTP timeout for the reader service request.",
    )
    user_agent: str = Field(
        default="url-to-kindle/0.1",
        description="User-Agent sent to the reader service.",
    )

    # Document rendering.
    default_format: DocumentFormat = Field(
        default="epub",
        description="Format used when a request does not name one.",
    )
    enabled_formats: Annotated[list[DocumentFormat], NoDecode] = Field(
        default_factory=lambda: ["epub", "html", "pdf"],
        description="Formats served by `/convert` (comma separated in env).",
    )
    filename_strip_non_ascii: bool = Field(
        default=False,
        description="Drop non-ASCII characters from download filenames before sanitizing.",
    )
    epub_language: str = Field(
        default="en",
        description="Language code written into EPUB metadata.",
    )
    epub_cover_path: Path | None = Field(
        default=None,
        description="Optional cover image embedded into every EPUB.",
    )
    pdf_font_path: Path = Field(
        default=BUNDLED_FONT_PATH,
        description="Font file inlined into the PDF stylesheet. Required when PDF is enabled.",
    )
    pdf_font_family: str = Field(
        default="Lato",
        description="CSS font-family name declared for the embedded PDF font.",
    )
    pdf_content_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for loading the PDF page content before failing.",
    )
    pdf_browser_executable_path: str | None = Field(
        default=None,
        description="Chromium executable for PDF rendering. Playwright's bundled build when unset.",
    )
    pdf_browser_args: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"],
        description="Extra Chromium launch arguments (comma separated in env).",
    )
    pdf_preview_chars: int = Field(
        default=200,
        ge=0,
        description="Characters of rendered body text logged at DEBUG before printing; 0 disables.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for backend log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("URL_TO_KINDLE_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("URL_TO_KINDLE_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("default_format", mode="before")
    @classmethod
    def _normalize_default_format(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("URL_TO_KINDLE_DEFAULT_FORMAT must be a string.")
        normalized = value.strip().lower()
        if normalized in DOCUMENT_FORMATS:
            return normalized
        raise ValueError("URL_TO_KINDLE_DEFAULT_FORMAT must be set to: epub, html, pdf.")

    @field_validator("enabled_formats", mode="before")
    @classmethod
    def _normalize_enabled_formats(cls, value: Any) -> Any:
        parts = _split_csv(value)
        if isinstance(parts, list):
            return [str(part).strip().lower() for part in parts]
        return parts

    @field_validator("cors_allowed_origins", "pdf_browser_args", mode="before")
    @classmethod
    def _normalize_lists(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("extraction_base_url", mode="before")
    @classmethod
    def _normalize_extraction_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("URL_TO_KINDLE_EXTRACTION_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("URL_TO_KINDLE_EXTRACTION_BASE_URL must not be empty.")
        return normalized

    @field_validator("user_agent", mode="before")
    @classmethod
    def _normalize_user_agent(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("URL_TO_KINDLE_USER_AGENT must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("URL_TO_KINDLE_USER_AGENT must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator("epub_cover_path", mode="before")
    @classmethod
    def _normalize_cover_path(cls, value: Any) -> Path | None:
        normalized = _normalize_optional_text(value) if not isinstance(value, Path) else value
        if normalized is None:
            return None
        return _resolve_path(normalized)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("extraction_api_key", "pdf_browser_executable_path", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_rendering_configuration(settings: AppSettings) -> None:
    errors: list[str] = []

    if not settings.enabled_formats:
        errors.append("URL_TO_KINDLE_ENABLED_FORMATS must name at least one format.")
    elif settings.default_format not in settings.enabled_formats:
        errors.append(
            f"URL_TO_KINDLE_DEFAULT_FORMAT={settings.default_format} is not in "
            "URL_TO_KINDLE_ENABLED_FORMATS."
        )
    if "pdf" in settings.enabled_formats and not settings.pdf_font_path.is_file():
        errors.append(f"Missing PDF font asset: {settings.pdf_font_path}")
    if settings.epub_cover_path is not None and not settings.epub_cover_path.is_file():
        errors.append(f"Missing EPUB cover image: {settings.epub_cover_path}")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid rendering configuration:\n{bullets}")


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(*, validate_rendering: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)

    if validate_rendering:
        _validate_rendering_configuration(settings)

    return settings
