"""Orchestrator data models."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..models import UploadOutcome, UploadStatus


@dataclass
class FileUploadTask:
    """One candidate file waiting to be attached to the release."""
    source_path: Path
    remote_name: str
    asset_name: str = ""
    attempt_count: int = 0

    def __post_init__(self):
        self.source_path = Path(self.source_path)
        if not self.asset_name:
            self.asset_name = self.source_path.name


@dataclass
class OutcomeLog:
    """Append-only record of per-file outcomes for one run."""
    entries: List[UploadOutcome] = field(default_factory=list)

    def record(self, outcome: UploadOutcome) -> UploadOutcome:
        self.entries.append(outcome)
        return outcome

    def __len__(self) -> int:
        return len(self.entries)

    def with_status(self, status: UploadStatus) -> List[UploadOutcome]:
        return [o for o in self.entries if o.status == status]

    @property
    def succeeded(self) -> List[UploadOutcome]:
        return self.with_status(UploadStatus.SUCCESS)

    @property
    def suppressed(self) -> List[UploadOutcome]:
        return self.with_status(UploadStatus.SUPPRESSED)

    @property
    def exhausted(self) -> List[UploadOutcome]:
        return self.with_status(UploadStatus.FAILED)

    @property
    def all_success(self) -> bool:
        return all(o.success for o in self.entries)
