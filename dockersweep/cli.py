"""
Command-line interface for dockersweep.

Provides argument parsing and orchestrates the cleanup workflow.
"""

import sys
import argparse
import traceback
from typing import Optional

from . import __version__
from .config import CleanupConfig, ExecutionMode
from .detector import create_client
from .reporter import Reporter, OutputLevel, new_log_path
from .stages import build_stages, run_disk_usage_stage


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="dockersweep",
        description="Reclaim disk space on a container host by removing unused "
                    "containers, images, networks, volumes and build cache",
        epilog="Settings default to the APP_NAME, KEEP_IMAGES, TARGET_IMAGE_REPOSITORY "
               "(or CI_REGISTRY_IMAGE), DRY_RUN and CLEANUP_LOG_DIR environment variables.\n"
               "Example: DRY_RUN=true dockersweep --image registry.example.com/team/app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        default=None,
        help="Show what would be removed without actually removing anything",
    )
    mode.add_argument(
        "--execute",
        dest="dry_run",
        action="store_false",
        help="Remove resources even if DRY_RUN is set in the environment",
    )

    parser.add_argument(
        "--keep",
        type=int,
        metavar="N",
        help="Number of most recent images to keep for the target repository",
    )

    parser.add_argument(
        "--image",
        metavar="REPOSITORY",
        help="Repository whose old images are cleaned up",
    )

    parser.add_argument(
        "--app-name",
        help="Application name used in log messages",
    )

    parser.add_argument(
        "--log-dir",
        help="Directory the cleanup log is written to",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only print warnings and errors",
    )

    return parser


def _load_config(args) -> CleanupConfig:
    """
    Resolve the run configuration from the environment and arguments.

    Raises:
        ValueError: If a setting is invalid
    """
    return CleanupConfig.from_env().override(
        app_name=args.app_name,
        keep_images=args.keep,
        target_repository=args.image,
        dry_run=args.dry_run,
        log_dir=args.log_dir,
    )


def _output_level(args) -> OutputLevel:
    if args.quiet:
        return OutputLevel.QUIET
    if args.verbose:
        return OutputLevel.VERBOSE
    return OutputLevel.NORMAL


def run_cleanup(config: CleanupConfig, reporter: Reporter, client=None) -> int:
    """
    Run every cleanup stage in order and print the summary.

    Args:
        config: Run configuration
        reporter: Reporter for output
        client: Engine client (connects from the environment if None)

    Returns:
        int: Exit code:
            0 = cleanup completed (individual removal failures are warnings)
            1 = cleanup aborted
    """
    current = "startup"
    try:
        reporter.log(f"Starting cleanup for {config.app_name}...")

        if config.mode == ExecutionMode.DRY:
            reporter.log("Running in DRY RUN mode - no changes will be made")

        current = "engine connection"
        if client is None:
            client = create_client()

        current = "disk usage check"
        run_disk_usage_stage(client, reporter)

        results = []
        for stage in build_stages(client, config):
            current = stage.title.lower()
            results.append(stage.execute(config.mode, reporter))

        current = "disk usage check"
        run_disk_usage_stage(client, reporter, after=True)

        current = "summary"
        reporter.section("CLEANUP SUMMARY")
        reporter.print_summary(config, results)

        reporter.log("Cleanup completed successfully!")
        return 0

    except Exception as e:
        reporter.error(f"Cleanup failed during {current}: {e}")
        reporter.debug(traceback.format_exc())
        return 1


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        int: Exit code:
            0 = cleanup completed
            1 = cleanup aborted (engine unreachable, log file unwritable, ...)
            2 = invalid arguments or configuration
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Validate argument combinations
    if args.quiet and args.verbose:
        parser.error("--quiet and --verbose cannot be used together")

    try:
        config = _load_config(args)
    except ValueError as e:
        parser.error(str(e))

    log_file = new_log_path(config.log_dir)
    try:
        reporter = Reporter(log_file, _output_level(args))
    except OSError as e:
        print(f"Error: cannot open log file {log_file}: {e}", file=sys.stderr)
        return 1

    try:
        return run_cleanup(config, reporter)
    finally:
        reporter.close()


if __name__ == "__main__":
    sys.exit(main())
