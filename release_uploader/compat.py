"""Build a ReleaseConfig from legacy option mappings.

Older integrations pass a flat, camel-cased options dict with a few aliases
(``organisation``, ``requestOptions``...). Those names are only understood
here; the rest of the package works with ``ReleaseConfig``.
"""
import logging
from typing import Any, Dict, Mapping

from .errors import ConfigurationError
from .models import ExhaustedRetries, ReleaseConfig

logger = logging.getLogger(__name__)

# legacy name -> ReleaseConfig field
OPTION_NAMES: Dict[str, str] = {
    "organization": "organization",
    "organisation": "organization",
    "project": "project",
    "apiKey": "api_key",
    "release": "release",
    "baseSentryURL": "base_url",
    "releaseBody": "release_body",
    "include": "include",
    "exclude": "exclude",
    "filenameTransform": "filename_transform",
    "suppressErrors": "suppress_errors",
    "suppressConflictError": "suppress_conflict_error",
    "timeout": "timeout",
    "deleteAfterCompile": "delete_after_upload",
    "deleteRegex": "delete_pattern",
    "uploadFilesConcurrency": "upload_concurrency",
    "createReleaseRequestOptions": "create_release_request_options",
    "uploadFileRequestOptions": "upload_file_request_options",
    "exhaustedRetries": "exhausted_retries",
}


def config_from_options(options: Mapping[str, Any]) -> ReleaseConfig:
    """
    Translate a legacy options mapping into a ReleaseConfig.

    Unknown keys raise ConfigurationError. Falsy values fall back to the
    ReleaseConfig defaults, the same way the old options did.
    """
    kwargs: Dict[str, Any] = {}
    for key, value in options.items():
        if key == "requestOptions":
            continue
        if key not in OPTION_NAMES:
            raise ConfigurationError(f"Unknown option: {key}", field=key)
        if not value:
            continue
        if key == "organisation" and options.get("organization"):
            continue
        kwargs[OPTION_NAMES[key]] = value

    shared = options.get("requestOptions")
    if shared:
        logger.warning(
            "requestOptions is deprecated; use createReleaseRequestOptions "
            "and uploadFileRequestOptions instead"
        )
        kwargs.setdefault("create_release_request_options", shared)
        kwargs.setdefault("upload_file_request_options", shared)

    # Older callers used 0 (skipped above) or Infinity for "no limit".
    concurrency = kwargs.get("upload_concurrency")
    if concurrency is not None and (concurrency == float("inf") or concurrency <= 0):
        kwargs.pop("upload_concurrency")
    elif concurrency is not None:
        kwargs["upload_concurrency"] = int(concurrency)

    # Legacy timeout was expressed in milliseconds.
    if "timeout" in kwargs:
        kwargs["timeout"] = kwargs["timeout"] / 1000.0

    if "exhausted_retries" in kwargs:
        kwargs["exhausted_retries"] = ExhaustedRetries(kwargs["exhausted_retries"])

    return ReleaseConfig(**kwargs)
