"""
release_uploader - publish a release to an error-tracking service and attach
its build output files (bundles, source maps).

Usage:
    from release_uploader import ReleaseOrchestrator, ReleaseConfig

    config = ReleaseConfig(
        organization="acme",
        project="web",
        api_key=token,
        release="v1",
        upload_concurrency=8,
    )
    async with ReleaseOrchestrator(config) as orchestrator:
        result = await orchestrator.publish(Path("dist"))

    if not result.success:
        for error in result.errors:
            print(error)

    # Legacy camel-case options
    from release_uploader import config_from_options
    config = config_from_options({"organisation": "acme", "project": "web",
                                  "apiKey": token, "release": "v1"})
"""
from .compat import config_from_options
from .errors import (
    ConfigurationError,
    ConflictFailure,
    NetworkFailure,
    ReleaseUploaderError,
    TimeoutFailure,
)
from .models import (
    ExhaustedRetries,
    ReleaseConfig,
    ReleaseDescriptor,
    ReleaseResult,
    ReleaseState,
    SuppressionPolicy,
    UploadOutcome,
    UploadStatus,
)
from .orchestrator import FileUploadTask, ReleaseOrchestrator, RetryingUploader, UploadPool

__version__ = "0.3.0"
__all__ = [
    # Main
    "ReleaseOrchestrator",
    "config_from_options",
    # Models
    "ReleaseConfig",
    "ReleaseDescriptor",
    "ReleaseResult",
    "ReleaseState",
    "SuppressionPolicy",
    "ExhaustedRetries",
    "UploadOutcome",
    "UploadStatus",
    "FileUploadTask",
    # Engine parts
    "RetryingUploader",
    "UploadPool",
    # Errors
    "ReleaseUploaderError",
    "ConfigurationError",
    "NetworkFailure",
    "TimeoutFailure",
    "ConflictFailure",
]
