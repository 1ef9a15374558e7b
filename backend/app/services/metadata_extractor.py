from __future__ import annotations

from urllib.parse import urlparse

from backend.app.models.conversion_contracts import DocumentMetadata

TITLE_PREFIX = "Title: "
FALLBACK_TITLE = "Article"
INVALID_URL_AUTHOR = "invalid URL"


def extract_title(raw_text: str) -> str:
    # The reader service opens its markdown with a "Title: ..." header line.
    for line in raw_text.split("\n"):
        if line.startswith(TITLE_PREFIX):
            return line[len(TITLE_PREFIX) :].strip()
    return FALLBACK_TITLE


def extract_author(source_url: str) -> str:
    try:
        netloc = urlparse(source_url).netloc
    except ValueError:
        return INVALID_URL_AUTHOR
    host = netloc.rpartition("@")[2]
    return host or INVALID_URL_AUTHOR


def extract_metadata(raw_text: str, source_url: str) -> DocumentMetadata:
    return DocumentMetadata(
        title=extract_title(raw_text),
        author=extract_author(source_url),
        source_url=source_url,
    )
