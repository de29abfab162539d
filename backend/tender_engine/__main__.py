"""Command line entry point for running the engine on local files.

Usage:
    python -m tender_engine extract tender.txt [--profile profile.json]
    python -m tender_engine verify tender.txt draft.json [--profile profile.json]

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from tender_engine.config import settings
from tender_engine.pipeline import TenderPipeline
from tender_engine.schemas.customer import CustomerProfile
from tender_engine.schemas.shipment import StructuredShipment

logger = logging.getLogger("tender.cli")


class InputError(Exception):
    """An input file could not be read or parsed."""


def _read_text(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise InputError(f"Cannot read {path}: {e}") from e


def _load_model(model, path: str):
    raw = _read_text(path)
    try:
        return model.model_validate_json(raw)
    except ValidationError as e:
        raise InputError(f"Invalid {model.__name__} in {path}: {e.error_count()} errors\n{e}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tender_engine", description="Load tender extraction and verification")
    sub = parser.add_subparsers(dest="command", required=True)

    extract = sub.add_parser("extract", help="Extract typed candidates from a tender")
    extract.add_argument("text_file")
    extract.add_argument("--profile", help="Customer profile JSON")

    verify = sub.add_parser("verify", help="Verify a drafted shipment against its tender")
    verify.add_argument("text_file")
    verify.add_argument("draft_file")
    verify.add_argument("--profile", help="Customer profile JSON")
    return parser


def run(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    pipeline = TenderPipeline(settings)

    try:
        text = _read_text(args.text_file)
        profile = _load_model(CustomerProfile, args.profile) if args.profile else None
        extraction = pipeline.extract(text, profile)
        if args.command == "extract":
            output = extraction
        else:
            draft = _load_model(StructuredShipment, args.draft_file)
            output = pipeline.verify(draft, extraction, text, profile)
    except InputError as e:
        logger.error("%s", e)
        return 2

    sys.stdout.write(output.model_dump_json(indent=2) + "\n")
    return 0


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )
    sys.exit(run())


if __name__ == "__main__":
    main()
