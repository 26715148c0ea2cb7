"""Command line entry point for comparing two drawing revisions."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from plandiff import __version__
from plandiff.config.settings import load_config
from plandiff.core.cancellation import CancellationToken
from plandiff.core.entities import AffineAlignment, AnalysisMode
from plandiff.core.exceptions import AnalysisCancelled, ApplicationError
from plandiff.core.logging_config import configure_logging, logging_manager
from plandiff.services.analysis_pipeline import AnalysisPipeline
from plandiff.services.export_service import build_report, export_composite, write_report

logger = logging.getLogger("plandiff.main")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plandiff",
        description="Find and label the differences between two revisions of a drawing.",
    )
    parser.add_argument("before", help="Before (original) drawing image")
    parser.add_argument("after", help="After (revised) drawing image")
    parser.add_argument("--mode", type=str.upper, default=None,
                        choices=[m.value for m in AnalysisMode],
                        help="Analysis mode (default from config: MICRO)")
    parser.add_argument("--merge-distance", type=float, default=None,
                        help="Gap in pixels under which changed regions are merged")

    align = parser.add_argument_group("alignment of the After drawing")
    align.add_argument("--x", type=float, default=0.0, help="Horizontal offset in pixels")
    align.add_argument("--y", type=float, default=0.0, help="Vertical offset in pixels")
    align.add_argument("--scale", type=float, default=1.0, help="Uniform scale factor")
    align.add_argument("--rotation", type=float, default=0.0, help="Rotation in degrees about the center")
    align.add_argument("--opacity", type=float, default=0.5, help="Overlay opacity for --composite")

    parser.add_argument("--output", "-o", default=None, help="Write the JSON report here instead of stdout")
    parser.add_argument("--composite", default=None, help="Write an annotated composite image here")
    parser.add_argument("--config", default="config.json", help="Configuration file")
    parser.add_argument("--env-file", default=None, help=".env file with GEMINI_* variables")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Override the configured log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _print_progress(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one comparison and return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config, env_file=args.env_file)
    except ApplicationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    configure_logging(
        log_level=args.log_level or config.log_level,
        log_dir=config.log_dir,
        enable_file_logging=config.enable_file_logging,
        structured_logging=config.structured_logging,
    )
    try:
        return _run(args, config)
    finally:
        logging_manager.shutdown()


def _run(args: argparse.Namespace, config) -> int:
    logger.debug(f"plandiff {__version__}: {args.before} -> {args.after}")
    if args.scale <= 0:
        print("--scale must be positive", file=sys.stderr)
        return EXIT_FAILURE

    alignment = AffineAlignment(
        x=args.x, y=args.y, scale=args.scale, rotation=args.rotation, opacity=args.opacity
    )
    cancel_token = CancellationToken()
    pipeline = AnalysisPipeline(config)

    try:
        result = asyncio.run(pipeline.analyze(
            args.before, args.after, alignment,
            mode=args.mode, merge_distance=args.merge_distance,
            on_progress=_print_progress, cancel_token=cancel_token,
        ))
    except KeyboardInterrupt:
        cancel_token.cancel("interrupted")
        print("Analysis cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except AnalysisCancelled as e:
        print(f"Analysis cancelled: {e}", file=sys.stderr)
        return EXIT_CANCELLED
    except ApplicationError as e:
        print(f"Analysis failed: {e}", file=sys.stderr)
        return EXIT_FAILURE

    if result.is_empty:
        print("No differences found", file=sys.stderr)
    else:
        print(f"Found {len(result.items)} differences ({result.total_tokens} tokens used)",
              file=sys.stderr)

    try:
        if args.output:
            write_report(result, args.output)
        else:
            print(json.dumps(build_report(result), indent=2, ensure_ascii=False))

        if args.composite:
            export_composite(args.before, args.after, alignment, result.items, args.composite)
    except ApplicationError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
