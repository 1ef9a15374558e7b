from __future__ import annotations

import argparse
import sys
from pathlib import Path

from backend.app.dependencies import get_conversion_service, get_settings
from backend.app.logging_config import configure_application_logging
from backend.app.models.conversion_contracts import ConversionRequest
from backend.app.services.conversion_errors import ConversionError, ValidationFailure


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a web article into an e-reader document and save it locally.",
    )
    parser.add_argument("url", help="Absolute http/https article URL.")
    parser.add_argument(
        "--format",
        choices=("epub", "html", "pdf"),
        default=None,
        help="Output format. Defaults to URL_TO_KINDLE_DEFAULT_FORMAT.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory the document is written to (default: current directory).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_application_logging(settings)
    service = get_conversion_service()

    try:
        request = ConversionRequest(
            source_url=args.url,
            format=args.format or settings.default_format,
        )
        result = service.convert(request)
    except ValueError as exc:
        print(f"Invalid URL: {exc}", file=sys.stderr)
        return 2
    except ValidationFailure as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2
    except ConversionError as exc:
        print(f"Error processing URL: {exc}", file=sys.stderr)
        return 1

    args.output_dir.mkdir(parents=True, exist_ok=True)
    output_path = args.output_dir / result.download_name
    output_path.write_bytes(result.document.content)
    print(f"Wrote {result.document.size} bytes to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
