from .actions import (
    Action,
    ActionName,
    DeployAction,
    LogAction,
    PullAction,
    ResetAction,
    RollbackAction,
    StatusAction,
    parse_action,
)
from .dispatch_states import DispatchState, is_valid_transition
from .errors import (
    AuthError,
    ConfigError,
    ExecError,
    GitDeployError,
    GitError,
    NotificationError,
    RollbackError,
    ValidationError,
)

__all__ = [
    "Action",
    "ActionName",
    "DeployAction",
    "LogAction",
    "PullAction",
    "ResetAction",
    "RollbackAction",
    "StatusAction",
    "parse_action",
    "DispatchState",
    "is_valid_transition",
    "AuthError",
    "ConfigError",
    "ExecError",
    "GitDeployError",
    "GitError",
    "NotificationError",
    "RollbackError",
    "ValidationError",
]
