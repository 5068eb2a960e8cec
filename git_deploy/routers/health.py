from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter

from git_deploy.domain.errors import GitError
from git_deploy.services import BackupService, GitRepository, TelegramNotifier


logger = logging.getLogger("git-deploy.health")


def build_health_router(
    git: GitRepository,
    backups: BackupService,
    notifier: TelegramNotifier,
) -> APIRouter:
    router = APIRouter()

    @router.get("/healthz")
    async def healthcheck() -> Dict[str, Any]:
        issues = []
        branch = None
        commit = None
        try:
            branch = await git.current_branch()
            commit = await git.current_commit_hash()
        except GitError as exc:
            logger.warning("Health check could not read repository: %s", exc)
            issues.append(exc.message)

        return {
            "status": "healthy" if not issues else "degraded",
            "branch": branch,
            "commit": commit,
            "backup_available": backups.load() is not None,
            "notifications": "enabled" if notifier.is_enabled() else "disabled",
            "issues": issues,
        }

    return router
