from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from git_deploy.domain.errors import GitDeployError, GitError, RollbackError
from git_deploy.models import BackupRecord, utc_now
from git_deploy.repositories import BackupRecordStore
from git_deploy.services.git_service import GitRepository


logger = logging.getLogger("git-deploy.backup")

COMMIT_SHA_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")


class BackupService:
    """Saves the pre-pull commit and restores it on demand."""

    def __init__(
        self,
        store: BackupRecordStore,
        git: GitRepository,
        *,
        enabled: bool = True,
        max_age_hours: int = 168,
    ) -> None:
        self.store = store
        self.git = git
        self.enabled = enabled
        self.max_age_hours = max_age_hours

    @staticmethod
    def _looks_like_commit(value: Optional[str]) -> bool:
        return bool(value and COMMIT_SHA_PATTERN.match(value))

    async def save_current_commit(self) -> bool:
        if not self.enabled:
            return False
        try:
            record = BackupRecord(
                commit_hash=await self.git.current_commit_hash(),
                branch=await self.git.current_branch(),
            )
            self.store.save(record)
        except (GitDeployError, OSError) as exc:
            logger.error("Failed to save current commit: %s", exc)
            return False
        logger.info("Saved backup commit=%s branch=%s", record.commit_hash, record.branch)
        return True

    def load(self) -> Optional[BackupRecord]:
        return self.store.load()

    def info(self) -> Optional[Dict[str, Any]]:
        record = self.store.load()
        if record is None:
            return None
        return {
            "commit": record.commit_hash,
            "branch": record.branch,
            "saved_at": record.saved_at.isoformat(),
            "backup_age_hours": round(record.age_hours(), 1),
        }

    async def rollback(self) -> Dict[str, Any]:
        record = self.store.load()
        if record is None:
            raise RollbackError("No backup commit found")
        if not self._looks_like_commit(record.commit_hash):
            raise RollbackError(f"Invalid backup data: malformed commit {record.commit_hash!r}")

        try:
            output = await self.git.reset_to_commit(record.commit_hash)
        except GitError as exc:
            raise GitError(f"Rollback failed: {exc.message}") from exc

        logger.info("Rolled back to commit=%s branch=%s", record.commit_hash, record.branch)
        return {
            "success": True,
            "rollback_commit": record.commit_hash,
            "rollback_branch": record.branch,
            "backup_timestamp": record.saved_at.isoformat(),
            "result": output,
        }

    def expire_if_stale(self, max_age_hours: Optional[int] = None) -> bool:
        """Drop the record once it is older than the threshold. Returns True if dropped."""
        threshold = self.max_age_hours if max_age_hours is None else max_age_hours
        record = self.store.load()
        if record is None:
            return False
        if record.age_hours(utc_now()) > threshold:
            self.store.clear()
            logger.info("Expired backup commit=%s older than %sh", record.commit_hash, threshold)
            return True
        return False
