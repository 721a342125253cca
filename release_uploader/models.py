"""
Models for release_uploader module.

Immutable dataclasses for configuration, release descriptors and upload
outcomes. Defaults are module-level constants so callers can reference them.
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .errors import ConfigurationError, NetworkFailure

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sentry.io/api/0"
DEFAULT_INCLUDE = r"\.js$|\.map$"
DEFAULT_DELETE_PATTERN = r"\.map$"
DEFAULT_FILENAME_PREFIX = "~/"
DEFAULT_REQUEST_TIMEOUT = 60.0  # seconds
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF = 0.5  # seconds, multiplied by attempt number

LEGACY_PROJECTS_SUFFIX = re.compile(r"/projects/?$")

PatternLike = Union[str, Pattern[str], None]
RequestOptions = Union[Mapping[str, Any], Callable[[Any], Mapping[str, Any]]]
ReleaseVersion = Union[str, Callable[[Optional[str]], str], None]


def default_release_body(version: str, projects: Sequence[str]) -> Dict[str, Any]:
    return {"version": version, "projects": list(projects)}


def default_filename_transform(name: str) -> str:
    return f"{DEFAULT_FILENAME_PREFIX}{name}"


def normalize_base_url(base_url: Optional[str]) -> str:
    """
    Normalize a caller-supplied API base URL.

    The base URL used to be documented with a ``/projects`` suffix. That
    suffix is stripped with a deprecation warning.
    """
    if not base_url:
        return DEFAULT_BASE_URL
    if LEGACY_PROJECTS_SUFFIX.search(base_url):
        logger.warning(
            "base URL with '/projects' suffix is deprecated; pass the API root instead (got %s)",
            base_url,
        )
        base_url = LEGACY_PROJECTS_SUFFIX.sub("", base_url)
    return base_url.rstrip("/")


def _compile(pattern: PatternLike, name: str) -> Optional[Pattern[str]]:
    if pattern is None or isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid {name} pattern {pattern!r}: {exc}", field=name) from exc


class UploadStatus(Enum):
    """Terminal status of a single file upload."""
    SUCCESS = "success"
    SUPPRESSED = "suppressed"  # failed, but suppression policy resolved it
    FAILED = "failed"  # retries exhausted


class ExhaustedRetries(Enum):
    """What to do with a file that failed every attempt."""
    SUPPRESS = "suppress"
    PROPAGATE = "propagate"


class ReleaseState(Enum):
    """States of one release publishing run."""
    IDLE = "idle"
    VALIDATING_CONFIG = "validating_config"
    CREATING_RELEASE = "creating_release"
    UPLOADING_FILES = "uploading_files"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadOutcome:
    """Immutable result of uploading one file."""
    remote_name: str
    source_path: Path
    status: UploadStatus = UploadStatus.SUCCESS
    attempts: int = 0
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status == UploadStatus.SUCCESS

    @classmethod
    def ok(cls, remote_name: str, source_path: Path, attempts: int):
        return cls(remote_name=remote_name, source_path=source_path, attempts=attempts)

    @classmethod
    def suppressed(cls, remote_name: str, source_path: Path, attempts: int, error: Exception):
        return cls(
            remote_name=remote_name,
            source_path=source_path,
            status=UploadStatus.SUPPRESSED,
            attempts=attempts,
            error=str(error),
            status_code=getattr(error, "status_code", None),
        )

    @classmethod
    def fail(cls, remote_name: str, source_path: Path, attempts: int, error: Optional[Exception]):
        return cls(
            remote_name=remote_name,
            source_path=source_path,
            status=UploadStatus.FAILED,
            attempts=attempts,
            error=str(error) if error is not None else None,
            status_code=getattr(error, "status_code", None),
        )


@dataclass(frozen=True)
class SuppressionPolicy:
    """Decides which failures degrade to warnings instead of errors."""
    suppress_errors: bool = False
    suppress_conflict_error: bool = False
    exhausted_retries: ExhaustedRetries = ExhaustedRetries.SUPPRESS

    def suppresses(self, error: BaseException) -> bool:
        if self.suppress_errors:
            return True
        return (
            self.suppress_conflict_error
            and isinstance(error, NetworkFailure)
            and error.status_code == 409
        )


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Release version, target projects and the request body sent to create it."""
    version: str
    projects: Tuple[str, ...]
    body: Any

    @classmethod
    def build(
        cls,
        version: str,
        projects: Sequence[str],
        release_body: Callable[[str, Sequence[str]], Mapping[str, Any]] = default_release_body,
    ) -> "ReleaseDescriptor":
        if not version:
            raise ConfigurationError("Must provide release version", field="release")
        projects = tuple(projects)
        return cls(version=version, projects=projects, body=release_body(version, list(projects)))


@dataclass(frozen=True)
class ReleaseConfig:
    """Immutable configuration for a release upload run."""
    organization: Optional[str] = None
    project: Union[str, Sequence[str], None] = ()
    api_key: Optional[str] = None
    release: ReleaseVersion = None
    base_url: str = DEFAULT_BASE_URL
    release_body: Callable[[str, Sequence[str]], Mapping[str, Any]] = default_release_body
    include: PatternLike = DEFAULT_INCLUDE
    exclude: PatternLike = None
    filename_transform: Callable[[str], str] = default_filename_transform
    suppress_errors: bool = False
    suppress_conflict_error: bool = False
    exhausted_retries: ExhaustedRetries = ExhaustedRetries.SUPPRESS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    upload_concurrency: Optional[int] = None  # None = start every upload at once
    delete_after_upload: bool = False
    delete_pattern: PatternLike = DEFAULT_DELETE_PATTERN
    create_release_request_options: RequestOptions = field(default_factory=dict)
    upload_file_request_options: RequestOptions = field(default_factory=dict)

    def __post_init__(self):
        project = self.project
        if project is None:
            project = ()
        elif isinstance(project, str):
            project = (project,) if project else ()
        else:
            project = tuple(p for p in project if p)
        object.__setattr__(self, "project", project)

        object.__setattr__(self, "base_url", normalize_base_url(self.base_url))
        object.__setattr__(self, "include", _compile(self.include, "include"))
        object.__setattr__(self, "exclude", _compile(self.exclude, "exclude"))
        object.__setattr__(self, "delete_pattern", _compile(self.delete_pattern, "delete_pattern"))

        if isinstance(self.exhausted_retries, str):
            object.__setattr__(self, "exhausted_retries", ExhaustedRetries(self.exhausted_retries))

        if self.timeout is None or self.timeout <= 0:
            raise ConfigurationError("timeout must be a positive number of seconds", field="timeout")
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1", field="max_attempts")
        if self.retry_backoff < 0:
            raise ConfigurationError("retry_backoff cannot be negative", field="retry_backoff")
        if self.upload_concurrency is not None and self.upload_concurrency < 1:
            raise ConfigurationError(
                "upload_concurrency must be at least 1 (or None for unbounded)",
                field="upload_concurrency",
            )

    @property
    def projects(self) -> Tuple[str, ...]:
        return self.project  # normalized to a tuple in __post_init__

    @property
    def policy(self) -> SuppressionPolicy:
        return SuppressionPolicy(
            suppress_errors=self.suppress_errors,
            suppress_conflict_error=self.suppress_conflict_error,
            exhausted_retries=self.exhausted_retries,
        )

    def validate(self) -> None:
        """Raise ConfigurationError naming the first missing required option."""
        if not self.organization:
            raise ConfigurationError("Must provide organization", field="organization")
        if not self.projects:
            raise ConfigurationError("Must provide project", field="project")
        if not self.api_key:
            raise ConfigurationError("Must provide api key", field="api_key")
        if not self.release:
            raise ConfigurationError("Must provide release version", field="release")

    def resolve_version(self, build_hash: Optional[str] = None) -> str:
        """Return the release version, calling it with the build hash if callable."""
        version = self.release(build_hash) if callable(self.release) else self.release
        if not version:
            raise ConfigurationError("Must provide release version", field="release")
        return str(version)

    def releases_url(self) -> str:
        return f"{self.base_url}/organizations/{self.organization}/releases"


@dataclass
class ReleaseResult:
    """Outcome of a publishing run: terminal state plus warning/error signals."""
    state: ReleaseState
    version: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    outcomes: List[UploadOutcome] = field(default_factory=list)
    deleted: List[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def degraded(self) -> bool:
        return self.success and bool(self.warnings)

    @property
    def uploaded_files(self) -> int:
        return sum(1 for o in self.outcomes if o.status == UploadStatus.SUCCESS)

    @property
    def failed_files(self) -> int:
        return sum(1 for o in self.outcomes if o.status == UploadStatus.FAILED)
