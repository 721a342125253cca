"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces so the orchestrator can be driven by fakes in tests.
"""
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from .models import ReleaseDescriptor


@runtime_checkable
class IRequestExecutor(Protocol):
    """Interface for performing one HTTP call with a timeout."""

    async def execute(self, spec: Any, timeout: Optional[float] = None) -> Any:
        """Send the request; raise NetworkFailure/TimeoutFailure on failure."""
        ...


@runtime_checkable
class IReleaseAPI(Protocol):
    """Interface for the two calls of the release protocol."""

    async def create_release(self, descriptor: ReleaseDescriptor) -> Any:
        """Create (or re-declare) the release."""
        ...

    async def upload_file(self, version: str, source_path: Path, remote_name: str) -> Any:
        """Attach one file to an existing release."""
        ...


UploadCallable = Callable[[Any], Awaitable[Any]]
