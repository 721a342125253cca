"""Command line interface for release_uploader package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .errors import ConfigurationError
from .models import (
    DEFAULT_DELETE_PATTERN,
    DEFAULT_FILENAME_PREFIX,
    DEFAULT_INCLUDE,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_BACKOFF,
    ExhaustedRetries,
    ReleaseConfig,
    ReleaseResult,
)
from .cli_progress import ReleaseProgressDisplay, render_configuration_summary


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _split_projects(values: Optional[Sequence[str]], env_value: Optional[str]) -> List[str]:
    """Projects from repeated -p flags, or a comma-separated SENTRY_PROJECT."""
    raw = list(values or []) or ([env_value] if env_value else [])
    projects = []
    for item in raw:
        projects.extend(part.strip() for part in item.split(",") if part.strip())
    return projects


def _prefix_transform(prefix: str) -> Callable[[str], str]:
    def transform(name: str) -> str:
        return f"{prefix}{name}"

    return transform


BUILD_HASH_PLACEHOLDER = "{build_hash}"


def _release_version(value: Optional[str], build_hash: Optional[str]):
    """Turn a release containing {build_hash} into a callable of the build hash."""
    if not value or BUILD_HASH_PLACEHOLDER not in value:
        return value
    if not build_hash:
        raise CLIError(f"release {value!r} uses {BUILD_HASH_PLACEHOLDER} but --build-hash is missing")

    def version(hash_value: Optional[str]) -> str:
        return value.replace(BUILD_HASH_PLACEHOLDER, hash_value or "")

    return version


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "(missing)"
    return f"{secret[:4]}..." if len(secret) > 8 else "***"


def _build_config(args: argparse.Namespace) -> ReleaseConfig:
    include = args.include
    if include is None and not args.all_files:
        include = DEFAULT_INCLUDE
    release = _release_version(args.release or os.getenv("SENTRY_RELEASE"), args.build_hash)
    try:
        return ReleaseConfig(
            organization=args.org or os.getenv("SENTRY_ORG"),
            project=_split_projects(args.project, os.getenv("SENTRY_PROJECT")),
            api_key=args.api_key or os.getenv("SENTRY_AUTH_TOKEN"),
            release=release,
            base_url=args.url or os.getenv("SENTRY_URL"),
            include=include,
            exclude=args.exclude,
            filename_transform=_prefix_transform(args.url_prefix),
            suppress_errors=args.suppress_errors,
            suppress_conflict_error=args.suppress_conflict,
            exhausted_retries=(
                ExhaustedRetries.PROPAGATE if args.fail_on_exhausted else ExhaustedRetries.SUPPRESS
            ),
            max_attempts=args.max_attempts,
            retry_backoff=args.retry_backoff,
            timeout=args.timeout,
            upload_concurrency=args.concurrency,
            delete_after_upload=args.delete_after_upload,
            delete_pattern=args.delete_pattern,
        )
    except ConfigurationError as exc:
        raise CLIError(str(exc)) from exc


async def _run_publish(config: ReleaseConfig, output_dir: Path, build_hash: Optional[str]) -> ReleaseResult:
    from .orchestrator import ReleaseOrchestrator

    display = ReleaseProgressDisplay()
    async with ReleaseOrchestrator(config) as orchestrator:
        display.attach(orchestrator.events)
        return await orchestrator.publish(output_dir, build_hash=build_hash)


def _exit_code(result: ReleaseResult) -> int:
    for warning in result.warnings:
        print(f"WARNING: {warning}", file=sys.stderr)
    for error in result.errors:
        print(f"ERROR: {error}", file=sys.stderr)
    return 0 if result.success else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-upload",
        description="Create a release and upload build output files (bundles, source maps) to it.",
    )
    parser.add_argument("output_dir", nargs="?", type=Path, help="Build output directory")
    parser.add_argument(
        "-r",
        "--release",
        default=None,
        help="Release version; {build_hash} is replaced by --build-hash (default from SENTRY_RELEASE)",
    )
    parser.add_argument("-o", "--org", default=None, help="Organization slug (default from SENTRY_ORG)")
    parser.add_argument(
        "-p",
        "--project",
        action="append",
        default=None,
        help="Project slug; repeat or comma-separate for several (default from SENTRY_PROJECT)",
    )
    parser.add_argument("--api-key", default=None, help="API token (default from SENTRY_AUTH_TOKEN)")
    parser.add_argument("--url", default=None, help="API base URL (default from SENTRY_URL or sentry.io)")
    parser.add_argument("--build-hash", default=None, help="Build hash substituted for {build_hash} in the release version")
    parser.add_argument("--include", default=None, help=f"Regex of asset names to upload (default {DEFAULT_INCLUDE})")
    parser.add_argument("--all-files", action="store_true", help="Upload every asset unless --include is given")
    parser.add_argument("--exclude", default=None, help="Regex of asset names to skip")
    parser.add_argument(
        "--url-prefix",
        default=DEFAULT_FILENAME_PREFIX,
        help=f"Prefix for remote file names (default {DEFAULT_FILENAME_PREFIX})",
    )
    parser.add_argument(
        "-j",
        "--concurrency",
        type=int,
        default=None,
        help="Maximum simultaneous uploads (default: unbounded)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help=f"Per-request timeout in seconds (default {DEFAULT_REQUEST_TIMEOUT:g})",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Upload attempts per file (default {DEFAULT_MAX_ATTEMPTS})",
    )
    parser.add_argument(
        "--retry-backoff",
        type=float,
        default=DEFAULT_RETRY_BACKOFF,
        help=f"Seconds to wait per failed attempt before retrying (default {DEFAULT_RETRY_BACKOFF:g})",
    )
    parser.add_argument("--suppress-errors", action="store_true", help="Report every failure as a warning")
    parser.add_argument(
        "--suppress-conflict",
        action="store_true",
        help="Treat 409 Conflict responses as warnings and stop retrying",
    )
    parser.add_argument(
        "--fail-on-exhausted",
        action="store_true",
        help="Fail the run when a file still fails after every attempt",
    )
    parser.add_argument(
        "--delete-after-upload",
        action="store_true",
        help="Delete matching output files after the upload",
    )
    parser.add_argument(
        "--delete-pattern",
        default=DEFAULT_DELETE_PATTERN,
        help=f"Regex of asset names to delete (default {DEFAULT_DELETE_PATTERN})",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"release-upload {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.output_dir is None:
        parser.print_help()
        return 0

    output_dir = Path(args.output_dir).expanduser()
    if not output_dir.is_dir():
        print(f"ERROR: output directory does not exist: {output_dir}", file=sys.stderr)
        return 1

    try:
        config = _build_config(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    release = config.release(args.build_hash) if callable(config.release) else config.release
    render_configuration_summary(
        {
            "Output Dir": str(output_dir),
            "Release": release or "(missing)",
            "Organization": config.organization or "(missing)",
            "Projects": ", ".join(config.projects) or "(missing)",
            "API Key": _mask(config.api_key),
            "API URL": config.base_url,
            "Include": config.include.pattern if config.include else "(all)",
            "Exclude": config.exclude.pattern if config.exclude else "-",
            "Concurrency": config.upload_concurrency or "unbounded",
            "Timeout": f"{config.timeout:g}s",
            "Delete After": config.delete_pattern.pattern if config.delete_after_upload else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        result = asyncio.run(_run_publish(config, output_dir, args.build_hash))
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130
    return _exit_code(result)


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
