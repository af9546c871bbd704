# CLI interface for mcpdoctor
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

from mcpdoctor import __version__
from mcpdoctor.config import Settings, load_config
from mcpdoctor.errors import DoctorError, PreflightError, UsageError
from mcpdoctor.report import SECTIONS, collect, project_sections

# ABOUTME: Exit codes
# 0 = report produced, 2 = invalid invocation, 3 = fatal precondition failure
EXIT_SUCCESS = 0
EXIT_USAGE_ERROR = 2
EXIT_FATAL = 3

MIN_PYTHON = (3, 10)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class JSONArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports bad invocations as UsageError.

    ABOUTME: The CLI turns UsageError into a JSON error object on stdout
    """

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def build_parser() -> JSONArgumentParser:
    parser = JSONArgumentParser(
        prog="mcpdoctor",
        description="Audit MCP server configuration across all config tiers and check server health",
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"mcpdoctor v{__version__}"
    )
    parser.add_argument(
        "--section",
        default="all",
        metavar="{" + ",".join(SECTIONS) + "}",
        help="Limit output to one section (meta and summary are always included)"
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        help="Directory to start project-root detection from (default: current directory)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to mcpdoctor's own config.toml"
    )
    parser.add_argument(
        "--compact",
        action="store_true",
        help="Emit JSON on a single line"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log progress to stderr"
    )

    return parser


def configure_logging(verbose: bool) -> None:
    """Send logs to stderr so stdout carries only JSON."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def preflight(config_path: Path | None) -> Settings:
    """Check hard requirements before any work starts.

    Raises:
        PreflightError: If the interpreter is too old or the tool config is broken
    """
    if sys.version_info < MIN_PYTHON:
        required = ".".join(str(part) for part in MIN_PYTHON)
        raise PreflightError(f"Python {required}+ is required, running {sys.version.split()[0]}")
    return load_config(config_path)


def resolve_project_dir(value: Path | None) -> Path | None:
    if value is None:
        return None
    path = value.expanduser()
    if not path.is_dir():
        raise UsageError(f"--project-dir is not a directory: {value}")
    return path.resolve()


def emit(data: dict[str, Any], compact: bool = False) -> None:
    print(json.dumps(data, indent=None if compact else 2, default=str))


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    ABOUTME: Parses args, runs preflight, prints the JSON report
    ABOUTME: Returns exit code for sys.exit()
    """
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
        configure_logging(args.verbose)
        project_dir = resolve_project_dir(args.project_dir)
        settings = preflight(args.config)
    except DoctorError as e:
        emit(e.to_dict())
        return e.exit_code

    try:
        result = collect(project_dir=project_dir, settings=settings)
    except Exception as e:
        logging.getLogger(__name__).exception("Report collection failed")
        emit({"error": {"type": "fatal_error", "message": str(e)}})
        return EXIT_FATAL

    emit(project_sections(result, args.section), compact=args.compact)
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
