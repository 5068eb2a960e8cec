from __future__ import annotations

from typing import Optional

from git_deploy.models import BackupRecord


class InMemoryBackupRecordStore:
    """Process-local fallback used when the project root is not writable."""

    def __init__(self, record: Optional[BackupRecord] = None) -> None:
        self._record = record

    def save(self, record: BackupRecord) -> None:
        self._record = record

    def load(self) -> Optional[BackupRecord]:
        return self._record

    def clear(self) -> None:
        self._record = None
