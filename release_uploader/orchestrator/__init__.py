"""Orchestrator package - coordinates release publishing."""
from .core import ReleaseOrchestrator
from .models import FileUploadTask, OutcomeLog
from .pool import UploadPool
from .retry import RetryingUploader

__all__ = [
    "ReleaseOrchestrator",
    "FileUploadTask",
    "OutcomeLog",
    "UploadPool",
    "RetryingUploader",
]
