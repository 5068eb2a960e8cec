from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from git_deploy.models import BackupRecord


logger = logging.getLogger("git-deploy.backup")

BACKUP_FILENAME = ".git-deploy-backup"


class BackupRecordStore(Protocol):
    """Single-slot storage for the last known good commit."""

    def save(self, record: BackupRecord) -> None: ...

    def load(self) -> Optional[BackupRecord]: ...

    def clear(self) -> None: ...


class FileBackupRecordStore:
    """JSON file under the project root holding at most one record."""

    def __init__(self, project_root: Path | str, *, display_timezone: Optional[ZoneInfo] = None):
        self.path = Path(project_root) / BACKUP_FILENAME
        self.display_timezone = display_timezone or ZoneInfo("UTC")

    def save(self, record: BackupRecord) -> None:
        document = {
            "commit": record.commit_hash,
            "branch": record.branch,
            "timestamp": record.saved_at.astimezone(self.display_timezone).strftime("%Y-%m-%d %H:%M:%S"),
            "saved_at": int(record.saved_at.timestamp()),
        }
        self.path.write_text(json.dumps(document, indent=4))

    def load(self) -> Optional[BackupRecord]:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text())
            return BackupRecord(
                commit_hash=str(document["commit"]),
                branch=str(document.get("branch") or ""),
                saved_at=datetime.fromtimestamp(int(document["saved_at"]), tz=timezone.utc),
            )
        except (OSError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Ignoring unreadable backup file %s: %s", self.path, exc)
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
