from __future__ import annotations

import re

MAX_FILENAME_LENGTH = 100
FALLBACK_FILENAME = "article"

_ILLEGAL_CHARACTERS = re.compile(r"['’()<>:\"/\\|?*\x00-\x1f]")
_NON_ASCII_CHARACTERS = re.compile(r"[^\x00-\x7f]")
_WHITESPACE_RUN = re.compile(r"\s+")
_UNDERSCORE_RUN = re.compile(r"_+")


def sanitize_filename(text: str, *, strip_non_ascii: bool = False) -> str:
    """Turn arbitrary text into a lowercase, filesystem-safe token.

    The result is at most ``MAX_FILENAME_LENGTH`` characters and may be empty
    when every character of ``text`` was stripped.
    """
    value = text
    if strip_non_ascii:
        value = _NON_ASCII_CHARACTERS.sub("", value)
    value = _ILLEGAL_CHARACTERS.sub("", value)
    value = _WHITESPACE_RUN.sub("_", value)
    value = _UNDERSCORE_RUN.sub("_", value)
    value = value.strip("_")
    value = value[:MAX_FILENAME_LENGTH]
    # Some scripts grow when lowercased; cut again and drop a trailing
    # underscore exposed by either cut.
    value = value.lower()[:MAX_FILENAME_LENGTH]
    return value.rstrip("_")


def download_filename(title: str, *, strip_non_ascii: bool = False) -> str:
    sanitized = sanitize_filename(title, strip_non_ascii=strip_non_ascii)
    return sanitized or FALLBACK_FILENAME
