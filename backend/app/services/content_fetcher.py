from __future__ import annotations

import codecs
import logging
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from backend.app.models.conversion_contracts import ArticleContent
from backend.app.services.conversion_errors import FetchFailure

LOGGER = logging.getLogger("url_to_kindle.content_fetcher")


class ContentFetcher:
    """Fetches normalized article text from a reader-style extraction service.

    The article URL is appended verbatim to ``base_url`` and the
    ``X-Respond-With`` header asks for text instead of the page HTML.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://r.jina.ai",
        response_format: str = "markdown",
        timeout_seconds: float = 20.0,
        user_agent: str = "url-to-kindle/0.1",
        api_key: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._response_format = response_format.strip() or "markdown"
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._user_agent = user_agent.strip() or "url-to-kindle/0.1"
        self._api_key = api_key

    def extraction_url(self, source_url: str) -> str:
        return f"{self._base_url}/{source_url}"

    def fetch(self, source_url: str) -> ArticleContent:
        headers = {
            "Accept": "text/plain, text/markdown;q=0.9, */*;q=0.1",
            "User-Agent": self._user_agent,
            "X-Respond-With": self._response_format,
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        request = Request(self.extraction_url(source_url), headers=headers, method="GET")

        LOGGER.info("fetching article text source_url=%s", source_url)
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                charset = _response_charset(response.headers.get_content_charset())
                body = response.read().decode(charset, errors="replace")
        except HTTPError as exc:
            status_code = int(exc.code)
            raise FetchFailure(
                f"Extraction service returned HTTP {status_code}",
                status_code=status_code,
            ) from exc
        except (URLError, TimeoutError, OSError) as exc:
            reason = getattr(exc, "reason", None) or exc
            raise FetchFailure(f"Extraction service unreachable: {reason}") from exc
        except HTTPException as exc:
            raise FetchFailure(
                f"Extraction service sent a malformed response: {type(exc).__name__}"
            ) from exc

        if not body.strip():
            raise FetchFailure("No content received.")

        LOGGER.debug("fetched article text source_url=%s chars=%s", source_url, len(body))
        return ArticleContent(raw_text=body)


def _response_charset(declared: str | None) -> str:
    if not declared:
        return "utf-8"
    try:
        codecs.lookup(declared)
    except LookupError:
        LOGGER.warning("unknown response charset, decoding as utf-8 charset=%s", declared)
        return "utf-8"
    return declared
