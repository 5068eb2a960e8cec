from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Union

from git_deploy.domain.errors import ValidationError


class ActionName(str, Enum):
    PULL = "pull"
    RESET = "reset"
    LOG = "log"
    DEPLOY = "deploy"
    STATUS = "status"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class PullAction:
    name = ActionName.PULL
    via_webhook: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetAction:
    name = ActionName.RESET
    commit_id: str = ""


@dataclass(frozen=True)
class LogAction:
    name = ActionName.LOG
    limit: int = 10


@dataclass(frozen=True)
class DeployAction:
    name = ActionName.DEPLOY
    force_dependency_install: bool = False


@dataclass(frozen=True)
class StatusAction:
    name = ActionName.STATUS


@dataclass(frozen=True)
class RollbackAction:
    name = ActionName.ROLLBACK


Action = Union[PullAction, ResetAction, LogAction, DeployAction, StatusAction, RollbackAction]

VALID_ACTIONS: tuple[str, ...] = tuple(item.value for item in ActionName)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_action(payload: Mapping[str, Any], *, via_webhook: bool = False) -> Action:
    """Build the action variant for a request body.

    Webhook deliveries always pull. Everything else must name a valid action;
    reset additionally needs a non-empty ``commit_id``.
    """
    if via_webhook:
        metadata = {
            "gitlab_event": payload.get("gitlab_event"),
            "is_gitlab_webhook": True,
        }
        return PullAction(via_webhook=True, metadata=metadata)

    raw = payload.get("action")
    if not raw:
        raise ValidationError("Action is required")
    try:
        name = ActionName(str(raw).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"Invalid action: {raw}. Valid actions: {', '.join(VALID_ACTIONS)}"
        ) from exc

    if name == ActionName.PULL:
        return PullAction()
    if name == ActionName.RESET:
        commit_id = str(payload.get("commit_id") or "").strip()
        if not commit_id:
            raise ValidationError("commit_id is required for reset action")
        return ResetAction(commit_id=commit_id)
    if name == ActionName.LOG:
        return LogAction()
    if name == ActionName.DEPLOY:
        return DeployAction(force_dependency_install=_as_bool(payload.get("force_composer", False)))
    if name == ActionName.STATUS:
        return StatusAction()
    return RollbackAction()
