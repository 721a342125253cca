"""Services for release_uploader module."""
from .api_client import HTTPRequestExecutor, ReleaseAPIClient, RequestSpec, combine_request_options
from .cleanup import delete_matching
from .file_selection import FileCollector, is_included

__all__ = [
    "HTTPRequestExecutor",
    "ReleaseAPIClient",
    "RequestSpec",
    "combine_request_options",
    "delete_matching",
    "FileCollector",
    "is_included",
]
