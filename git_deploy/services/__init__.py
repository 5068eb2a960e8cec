from .auth_service import AuthContext, BearerTokenAuthenticator, RequestAuthenticator, WebhookAuthenticator
from .backup_service import BackupService
from .deployment_service import DeploymentService
from .executor import CommandExecutor
from .git_service import GitRepository
from .notifier import TelegramNotifier
from .webhook_service import DispatchResponse, WebhookDispatcher

__all__ = [
    "AuthContext",
    "BearerTokenAuthenticator",
    "RequestAuthenticator",
    "WebhookAuthenticator",
    "BackupService",
    "DeploymentService",
    "CommandExecutor",
    "GitRepository",
    "TelegramNotifier",
    "DispatchResponse",
    "WebhookDispatcher",
]
