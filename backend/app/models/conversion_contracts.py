from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.config import DocumentFormat


class ConversionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    source_url: str = Field(max_length=4096)
    format: DocumentFormat = "epub"

    @field_validator("source_url")
    @classmethod
    def _validate_source_url(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("URL parameter is required")
        if any(ord(character) < 32 for character in normalized):
            raise ValueError("URL contains control characters")
        parsed = urlparse(normalized)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("URL must be an absolute http/https URL")
        return normalized

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


@dataclass(frozen=True)
class ArticleContent:
    raw_text: str


@dataclass(frozen=True)
class DocumentMetadata:
    title: str
    author: str
    source_url: str


@dataclass(frozen=True)
class RenderedDocument:
    content: bytes
    media_type: str
    extension: str

    @property
    def size(self) -> int:
        return len(self.content)
