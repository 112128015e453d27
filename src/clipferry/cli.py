from __future__ import annotations

import argparse
import logging
import sys

from .app_logging import LOGGER_NAME, log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .dispatcher import Dispatcher, RunSummary
from .models import JobOutcome
from .remote import StreamApiClient
from .sources import build_jobs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipferry",
        description="Upload a directory of videos to a stream library, grouped into collections",
    )
    parser.add_argument("--config", required=True, help="Path to clipferry YAML config")
    parser.add_argument("--verbose", action="store_true", help="Log debug messages")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Upload every video in the source directory")
    run_parser.add_argument("--workers", type=int, default=None, help="Override pool.max_workers")
    run_parser.add_argument("--no-progress", action="store_true", help="Do not draw the progress bar")

    subparsers.add_parser("scan", help="List the videos and their target collections without uploading")
    return parser


def _print_summary(summary: RunSummary) -> None:
    print(
        f"\nProcessed {summary.total} file(s) in {summary.elapsed_seconds:.1f}s: "
        f"{summary.count(JobOutcome.UPLOADED)} uploaded, "
        f"{summary.count(JobOutcome.UPLOADED_NOT_CLEANED)} uploaded but not deleted, "
        f"{summary.count(JobOutcome.FAILED)} failed, "
        f"{summary.count(JobOutcome.SKIPPED)} skipped"
    )
    for result in summary.failed:
        error = result.error
        reason = f"[{error.kind.value}] {error.message}" if error is not None else "unknown error"
        print(f"  FAILED {result.job.name} {reason}", file=sys.stderr)
    for result in summary.results:
        if result.warning:
            print(f"  WARNING {result.job.name}: {result.warning}", file=sys.stderr)


def cmd_run(config: AppConfig, *, workers: int | None = None, show_progress: bool = True) -> int:
    if workers is not None:
        if workers < 1:
            print("--workers must be >= 1", file=sys.stderr)
            return 2
        config.pool.max_workers = workers
    logger = logging.getLogger(LOGGER_NAME)

    with StreamApiClient(config.library, logger=logger) as remote:
        dispatcher = Dispatcher(config, remote, logger)
        try:
            summary = dispatcher.run(show_progress=show_progress)
        except NotADirectoryError:
            raise
        except Exception as exc:
            log_with_fields(logger, logging.ERROR, "run_aborted", error=f"{exc.__class__.__name__}: {exc}")
            print(f"run aborted: {exc}", file=sys.stderr)
            return 1

    _print_summary(summary)
    if summary.interrupted:
        return 130
    return 0


def cmd_scan(config: AppConfig) -> int:
    source = config.source
    jobs = build_jobs(source.directory, source.extension, source.delimiter)
    if not jobs:
        print(f"no {source.extension} files in {source.directory}")
        return 0
    for job in jobs:
        if job.parse_error:
            print(f"  {job.name:40} MALFORMED {job.parse_error}")
        else:
            print(f"  {job.name:40} collection={job.model_name} title={job.title!r}")
    print(f"\n{len(jobs)} file(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"invalid config: {exc}", file=sys.stderr)
        return 2
    ensure_local_paths(config)
    setup_logger(config.paths.log, logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.command == "run":
            return cmd_run(config, workers=args.workers, show_progress=not args.no_progress)
        if args.command == "scan":
            return cmd_scan(config)
    except NotADirectoryError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
