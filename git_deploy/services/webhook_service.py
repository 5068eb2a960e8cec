from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from git_deploy.domain import (
    Action,
    DeployAction,
    DispatchState,
    LogAction,
    PullAction,
    ResetAction,
    RollbackAction,
    StatusAction,
    is_valid_transition,
    parse_action,
)
from git_deploy.domain.errors import GitDeployError, GitError, ValidationError
from git_deploy.models import DeploymentResult, dump
from git_deploy.schemas import ErrorResponse, InboundRequest, WebhookRequest
from git_deploy.services.auth_service import AuthContext, BearerTokenAuthenticator, RequestAuthenticator
from git_deploy.services.backup_service import BackupService
from git_deploy.services.deployment_service import DeploymentService
from git_deploy.services.git_service import GitRepository
from git_deploy.services.notifier import TelegramNotifier
from git_deploy.settings import Settings


logger = logging.getLogger("git-deploy.webhook")

Handler = Callable[[Any, InboundRequest], Awaitable[Dict[str, Any]]]


@dataclass
class DispatchResponse:
    status_code: int
    body: Dict[str, Any]


@dataclass
class _DispatchTrace:
    state: DispatchState = DispatchState.UNAUTHENTICATED
    action: Optional[str] = None

    def advance(self, new_state: DispatchState) -> None:
        if not is_valid_transition(self.state, new_state):
            raise RuntimeError(f"invalid dispatch transition from {self.state} to {new_state}")
        self.state = new_state


class WebhookDispatcher:
    """Authenticates a delivery, resolves its action, runs it and shapes the reply.

    One pass per request with no retries. Every success carries a freshly
    issued ``next_token``; every failure carries ``error`` and ``message``
    and no token.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        authenticator: RequestAuthenticator,
        tokens: BearerTokenAuthenticator,
        git: GitRepository,
        deployer: DeploymentService,
        backups: BackupService,
        notifier: TelegramNotifier,
    ) -> None:
        self.settings = settings
        self.authenticator = authenticator
        self.tokens = tokens
        self.git = git
        self.deployer = deployer
        self.backups = backups
        self.notifier = notifier
        self._mutation_lock = asyncio.Lock()
        self._handlers: Dict[type, Handler] = {
            PullAction: self._handle_pull,
            ResetAction: self._handle_reset,
            LogAction: self._handle_log,
            DeployAction: self._handle_deploy,
            StatusAction: self._handle_status,
            RollbackAction: self._handle_rollback,
        }

    async def handle(self, request: InboundRequest) -> DispatchResponse:
        trace = _DispatchTrace()
        try:
            auth = self.authenticator.authenticate(request)
            trace.advance(DispatchState.AUTHENTICATED)

            action = self.resolve_action(request, auth)
            trace.action = action.name.value
            trace.advance(DispatchState.ACTION_RESOLVED)
            logger.info("Dispatching action=%s auth=%s", trace.action, auth.method)

            result = await self._handlers[type(action)](action, request)
            trace.advance(DispatchState.EXECUTED)

            result["next_token"] = self.tokens.generate_token()
            trace.advance(DispatchState.RESPONDED)
            logger.info("Action %s completed", trace.action)
            return DispatchResponse(status_code=HTTPStatus.OK, body=result)
        except GitDeployError as exc:
            return await self._error_response(exc, exc.status_code, trace, request)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unhandled error during action=%s", trace.action)
            return await self._error_response(exc, HTTPStatus.INTERNAL_SERVER_ERROR, trace, request)

    def resolve_action(self, request: InboundRequest, auth: AuthContext) -> Action:
        payload = request.json_body()
        if auth.via_webhook:
            payload["gitlab_event"] = auth.event
            return parse_action(payload, via_webhook=True)
        try:
            body = WebhookRequest.model_validate(payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(f"Invalid request body: {location} {first.get('msg')}".strip()) from exc
        return parse_action(body.model_dump())

    async def _handle_pull(self, action: PullAction, request: InboundRequest) -> Dict[str, Any]:
        result: Dict[str, Any] = {"action": action.name.value}
        async with self._mutation_lock:
            if self.settings.backup_commits:
                self._expire_stale_backup()
                result["backup_saved"] = await self.backups.save_current_commit()

            stash_output = await self.git.stash()
            await self.git.pull()
            result["stash"] = stash_output
            result["pull"] = "Pull successful"
            if action.via_webhook:
                result["webhook"] = dict(action.metadata)

            deployment_summary = ""
            if self.settings.deployment_enabled:
                try:
                    deployment = await self.deployer.deploy(False)
                except GitDeployError as exc:
                    logger.warning("Deployment after pull failed (non-critical): %s", exc)
                    result["deployment"] = {"success": False, "error": exc.message, "critical": False}
                    deployment_summary = f"\n⚠️ *Deployment errors (non-critical):* `{exc.message}`"
                else:
                    result["deployment"] = dump(deployment)
                    deployment_summary = self._summarize_deployment(deployment)

        await self.notifier.send_pull_notification(
            branch=await self._branch_for_notification(),
            stash_output="\n".join(stash_output),
            source="GitLab Webhook" if action.via_webhook else "API Call",
            host=request.host,
            deployment_summary=deployment_summary,
        )
        return result

    async def _handle_reset(self, action: ResetAction, request: InboundRequest) -> Dict[str, Any]:
        if not action.commit_id:
            raise ValidationError("commit_id is required for reset action")
        async with self._mutation_lock:
            output = await self.git.reset_to_commit(action.commit_id)
        await self.notifier.send_reset_notification(action.commit_id)
        return {"action": action.name.value, "commit_id": action.commit_id, "result": output}

    async def _handle_log(self, action: LogAction, request: InboundRequest) -> Dict[str, Any]:
        log = await self.git.commit_log(action.limit)
        data = dump(log)
        return {
            "action": action.name.value,
            "data": {"commits": data["commits"], "branch": data["branch"]},
        }

    async def _handle_deploy(self, action: DeployAction, request: InboundRequest) -> Dict[str, Any]:
        async with self._mutation_lock:
            deployment = await self.deployer.deploy(action.force_dependency_install)
        await self.notifier.send_deployment_notification(
            deployment, manual=True, forced=action.force_dependency_install
        )
        return {
            "action": action.name.value,
            "deployment": dump(deployment),
            "forced": action.force_dependency_install,
        }

    async def _handle_status(self, action: StatusAction, request: InboundRequest) -> Dict[str, Any]:
        status = await self.git.status()
        return {
            "action": action.name.value,
            "git_status": dump(status),
            "config": {
                "deployment_enabled": self.settings.deployment_enabled,
                "telegram_enabled": self.notifier.is_enabled(),
                "auto_install": self.settings.auto_install,
                "backup_commits": self.settings.backup_commits,
                "clear_cache": self.settings.clear_cache,
                "fix_permissions": self.settings.fix_permissions,
                "dependency_manager": self.settings.dependency_manager,
                "project_root": self.settings.project_root,
                "current_branch": status.branch,
            },
            "backup": self.backups.info(),
        }

    async def _handle_rollback(self, action: RollbackAction, request: InboundRequest) -> Dict[str, Any]:
        async with self._mutation_lock:
            rollback = await self.backups.rollback()
        await self.notifier.send_rollback_notification(rollback)
        return {"action": action.name.value, "rollback": rollback}

    def _expire_stale_backup(self) -> None:
        try:
            self.backups.expire_if_stale()
        except OSError as exc:
            logger.warning("Unable to expire stale backup: %s", exc)

    async def _branch_for_notification(self) -> str:
        try:
            return await self.git.current_branch()
        except GitError as exc:
            logger.warning("Unable to read branch for notification: %s", exc)
            return "unknown"

    @staticmethod
    def _summarize_deployment(deployment: DeploymentResult) -> str:
        if not deployment.dependency_changes:
            return ""
        install = deployment.dependency_install_outcome
        install_status = "✅ Success" if install is not None and install.success else "❌ Failed"
        summary = f"\n*📦 Deployment Executed:*\nDependency install: `{install_status}`\n"
        if not deployment.success:
            summary += "❌ *Deployment error*"
        return summary

    async def _error_response(
        self,
        exc: BaseException,
        status_code: int,
        trace: _DispatchTrace,
        request: InboundRequest,
    ) -> DispatchResponse:
        if trace.state != DispatchState.ERROR:
            trace.advance(DispatchState.ERROR)
        status = HTTPStatus(int(status_code))
        message = exc.message if isinstance(exc, GitDeployError) else str(exc)
        logger.warning(
            "Request failed action=%s status=%s: %s", trace.action, status.value, message
        )
        context = f"{trace.action} action" if trace.action else "WebhookHandler Error"
        try:
            await self.notifier.send_error_notification(exc, context, host=request.host)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Error notification failed for action=%s", trace.action)
        body = ErrorResponse(action=trace.action, error=status.phrase, message=message)
        return DispatchResponse(status_code=status.value, body=body.model_dump())
