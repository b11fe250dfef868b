# directory_pipeline/cli.py
"""Command line entry point for the directory pipeline.

Usage:
    # Re-aggregate review scores from the latest platform dumps
    directory-pipeline aggregate

    # Discover, verify and classify new vendors
    directory-pipeline acquire --run-date 2025-01-31

    # Re-verify every vendor already in the Content Store
    directory-pipeline verify

    # Review aggregation followed by acquisition
    directory-pipeline run

    # Check vendor-mappings.json against the Content Store
    directory-pipeline validate-mappings
"""
from __future__ import annotations
import sys
import argparse
import logging
from typing import List, Optional

from directory_pipeline.agents.registry import validate_registry
from directory_pipeline.config import cfg
from directory_pipeline.context import RunContext, parse_run_date
from directory_pipeline.pipeline_graph import (
    run_acquisition_pipeline,
    run_full_pipeline,
    run_review_pipeline,
    run_verification_pipeline,
)
from directory_pipeline.services.store import DocumentError, load_json_document, load_vendor_records

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

COMMANDS = ("aggregate", "acquire", "verify", "run", "validate-mappings")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="directory-pipeline",
        description="Review aggregation and vendor acquisition for the software directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=COMMANDS, help="Sub-pipeline to run")
    parser.add_argument("--data-dir", default=None, help=f"Data directory (default: {cfg.DATA_DIR})")
    parser.add_argument("--content-dir", default=None, help=f"Content Store directory (default: {cfg.CONTENT_DIR})")
    parser.add_argument("--run-date", default=None, help="Run date stamp, any common format (default: today, UTC)")
    parser.add_argument("--log-level", default=cfg.LOG_LEVEL, help="Logging level (default: %(default)s)")
    return parser


def make_context(args: argparse.Namespace) -> RunContext:
    ctx = RunContext(run_date=parse_run_date(args.run_date))
    if args.data_dir:
        ctx.data_dir = args.data_dir
    if args.content_dir:
        ctx.content_dir = args.content_dir
    return ctx


def validate_mappings(ctx: RunContext) -> int:
    doc = load_json_document(ctx.mappings_path, required=True)
    known = [v.slug for v in load_vendor_records(ctx.content_dir)]
    errors, warnings = validate_registry(doc, known)

    for w in warnings:
        logger.warning("WARN: %s", w)
    if errors:
        for e in errors:
            logger.error("ERROR: %s", e)
        logger.error("Validation failed with %d error(s)", len(errors))
        return 1
    logger.info("Mappings valid (%d warning(s))", len(warnings))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        ctx = make_context(args)
    except ValueError as e:
        parser.error(str(e))

    try:
        if args.command == "aggregate":
            run_review_pipeline(ctx)
        elif args.command == "acquire":
            run_acquisition_pipeline(ctx)
        elif args.command == "verify":
            run_verification_pipeline(ctx)
        elif args.command == "run":
            run_full_pipeline(ctx)
        else:
            return validate_mappings(ctx)
    except DocumentError as e:
        logger.error("FATAL: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
