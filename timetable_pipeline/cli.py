"""Command-line interface: extract one timetable synchronously."""

from __future__ import annotations

import argparse
import sys

from .config import configure_logging
from .pipeline import process_document
from .provider_chain import resolve_chain
from .utils import PipelineError, guess_media_type


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(
        description="Extract a structured timetable from an image, PDF or DOCX file."
    )
    parser.add_argument("file_path", help="Path to the timetable document.")
    parser.add_argument(
        "--media-type",
        type=str,
        default=None,
        help="Declared media type (default: guessed from the file suffix).",
    )
    parser.add_argument(
        "--teacher",
        type=str,
        default=None,
        help="Teacher name to use when the document does not state one.",
    )
    parser.add_argument(
        "--providers",
        type=str,
        default=None,
        help="Comma-separated vision provider order, e.g. 'anthropic,openai' "
             "(Tesseract is always the last fallback).",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        metavar="FILE",
        help="Write the result JSON to FILE instead of stdout.",
    )
    parser.add_argument(
        "--document-only",
        action="store_true",
        help="Output only the timetable document, without acquisition metadata and insights.",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: LOG_LEVEL or INFO).")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level.upper() if args.log_level else None)

    media_type = args.media_type or guess_media_type(args.file_path)
    if media_type is None:
        print("Error: cannot infer media type; pass --media-type.", file=sys.stderr)
        return 2
    chain = resolve_chain(args.providers.split(",")) if args.providers else None

    try:
        result = process_document(
            args.file_path,
            media_type,
            teacher_hint=args.teacher,
            chain=chain,
        )
    except PipelineError as exc:
        print(f"Error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 1

    payload = result.document if args.document_only else result
    output = payload.model_dump_json(indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
    else:
        print(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
