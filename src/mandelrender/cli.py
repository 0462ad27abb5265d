from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

from .config import BACKENDS, SCHEDULES, default_render_config, load_named_render_configs, parse_complex, parse_resolution
from .execution import MPI_MISSING, needs_mpirun, run_batch, run_single_config_subprocess, run_single_render

EXAMPLE_ARGS = "mandel.png 1000x750 -1.20,0.35 -1,0.20"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render the Mandelbrot set to a grayscale PNG.",
        epilog=f"Example: %(prog)s {EXAMPLE_ARGS}",
    )
    # corners such as -1.20,0.35 are values, not options
    parser._negative_number_matcher = re.compile(r"^-\.?\d")
    parser.add_argument(
        "positional",
        nargs="*",
        metavar="ARG",
        help="FILE PIXELS UPPERLEFT LOWERRIGHT: output file, WIDTHxHEIGHT and the RE,IM corners",
    )
    parser.add_argument("--limit", type=int, help="iteration limit, 1-255 (default 255)")
    parser.add_argument("--chunk-size", type=int, help="rows per work chunk")
    parser.add_argument("--schedule", choices=SCHEDULES, help="chunk scheduling strategy")
    parser.add_argument("--backend", choices=BACKENDS, help="where the pixels are computed")
    parser.add_argument("--workers", type=int, help="thread pool size or number of MPI ranks")
    parser.add_argument("--track", action="store_true", help="log the render to MLflow")
    parser.add_argument("--quiet", action="store_true", help="suppress progress output")

    parser.add_argument("--batch", type=str, help="Path to a YAML batch file")
    parser.add_argument("--suite", type=str, help="Name of a suite within the batch file")
    parser.add_argument("--list-suites", action="store_true", help="List suites in the batch file")
    parser.add_argument("--task-id", type=int, help="Render one config index (for job arrays)")
    return parser


def print_usage(prog: str) -> None:
    print(f"Usage: {prog} FILE PIXELS UPPERLEFT LOWERRIGHT", file=sys.stderr)
    print(f"Example: {prog} {EXAMPLE_ARGS}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_intermixed_args(argv)
    verbose = not args.quiet

    if args.batch:
        return _main_batch(args, verbose)

    if args.suite or args.list_suites or args.task_id is not None:
        print("ERROR: --suite, --list-suites and --task-id require --batch", file=sys.stderr)
        return 1

    if len(args.positional) != 4:
        print_usage(parser.prog)
        return 1

    output, pixels, upper_left, lower_right = args.positional
    overrides = {
        key: value
        for key, value in (
            ("limit", args.limit),
            ("chunk_size", args.chunk_size),
            ("schedule", args.schedule),
            ("backend", args.backend),
            ("workers", args.workers),
        )
        if value is not None
    }

    try:
        width, height = parse_resolution(pixels)
        config = default_render_config(
            output=output,
            width=width,
            height=height,
            upper_left=parse_complex(upper_left),
            lower_right=parse_complex(lower_right),
            **overrides,
        )
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        print_usage(parser.prog)
        return 1

    if needs_mpirun(config):
        ok = run_single_config_subprocess(
            config, 0, 1, show_progress=False, track=args.track, verbose=verbose
        )
        return 0 if ok else 1

    try:
        run_single_render(config, track=args.track, verbose=verbose)
    except OSError as exc:
        print(f"ERROR: error writing PNG file: {exc}", file=sys.stderr)
        return 1
    except ImportError:
        if config.backend != "mpi":
            raise
        print(f"ERROR: {MPI_MISSING}", file=sys.stderr)
        return 1
    return 0


def _main_batch(args: argparse.Namespace, verbose: bool) -> int:
    batch_path = Path(args.batch)

    if args.task_id is not None and args.suite is None:
        print("ERROR: --task-id requires --suite", file=sys.stderr)
        return 1

    try:
        suites = load_named_render_configs(batch_path, args.suite)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if args.list_suites:
        for name, configs in suites:
            print(f"{name}: {len(configs)} configurations")
        return 0

    exit_code = 0
    for suite_name, configs in suites:
        descriptor = f"{batch_path}::{suite_name}"
        rc = run_batch(
            configs,
            args.task_id,
            suite_name,
            descriptor,
            track=args.track,
            verbose=verbose,
        )
        exit_code = exit_code or rc
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
