from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI

from git_deploy import __version__
from git_deploy.repositories import BackupRecordStore, FileBackupRecordStore, InMemoryBackupRecordStore
from git_deploy.routers import build_health_router, build_webhook_router
from git_deploy.services import (
    BackupService,
    BearerTokenAuthenticator,
    CommandExecutor,
    DeploymentService,
    GitRepository,
    RequestAuthenticator,
    TelegramNotifier,
    WebhookAuthenticator,
    WebhookDispatcher,
)
from git_deploy.settings import Settings


logger = logging.getLogger("git-deploy")


def build_backup_store(settings: Settings) -> BackupRecordStore:
    if os.access(settings.project_path, os.W_OK):
        return FileBackupRecordStore(settings.project_path, display_timezone=settings.tzinfo)
    logger.warning(
        "Project root %s is not writable; keeping backup records in memory.",
        settings.project_root,
    )
    return InMemoryBackupRecordStore()


def build_dispatcher(
    settings: Settings,
    *,
    executor: Optional[CommandExecutor] = None,
    notifier: Optional[TelegramNotifier] = None,
    backup_store: Optional[BackupRecordStore] = None,
) -> WebhookDispatcher:
    executor = executor or CommandExecutor()
    git = GitRepository.from_settings(settings, executor)
    tokens = BearerTokenAuthenticator.from_settings(settings)
    backups = BackupService(
        backup_store or build_backup_store(settings),
        git,
        enabled=settings.backup_commits,
        max_age_hours=settings.max_backup_age_hours,
    )
    return WebhookDispatcher(
        settings,
        authenticator=RequestAuthenticator(WebhookAuthenticator.from_settings(settings), tokens),
        tokens=tokens,
        git=git,
        deployer=DeploymentService(settings, git, executor),
        backups=backups,
        notifier=notifier or TelegramNotifier.from_settings(settings),
    )


def create_app(
    settings: Settings,
    *,
    executor: Optional[CommandExecutor] = None,
    notifier: Optional[TelegramNotifier] = None,
    backup_store: Optional[BackupRecordStore] = None,
) -> FastAPI:
    dispatcher = build_dispatcher(
        settings, executor=executor, notifier=notifier, backup_store=backup_store
    )
    app = FastAPI(
        title="Git Deploy Agent",
        version=__version__,
        description="Webhook-triggered git pull and deployment agent.",
    )
    app.include_router(build_webhook_router(dispatcher))
    app.include_router(build_health_router(dispatcher.git, dispatcher.backups, dispatcher.notifier))
    app.state.dispatcher = dispatcher
    logger.info(
        "Git deploy agent ready (project_root=%s, deployment_enabled=%s, notifications=%s)",
        settings.project_root,
        settings.deployment_enabled,
        dispatcher.notifier.is_enabled(),
    )
    return app
