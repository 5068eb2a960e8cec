from __future__ import annotations

import logging
import os
import shutil
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Literal, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from git_deploy.domain.errors import ConfigError


logger = logging.getLogger("git-deploy.settings")

ENV_PREFIX = "GITDEPLOY_"


class Settings(BaseModel):
    """Runtime configuration resolved once from environment variables.

    Field aliases are the legacy, unprefixed variable names. ``from_env``
    looks up ``GITDEPLOY_<ALIAS>`` first and only falls back to the legacy
    name, logging a deprecation warning when it does.
    """

    jwt_secret: Optional[str] = Field(
        default=None, alias="JWT_SECRET", description="Shared secret for bearer tokens."
    )
    webhook_secret: Optional[str] = Field(
        default=None,
        alias="WEBHOOK_SECRET",
        description="GitLab webhook token. Falls back to the JWT secret when unset.",
    )
    git_binary: str = Field(
        default="/usr/bin/git", alias="GIT_BINARY", description="Path to the git executable."
    )
    project_root: str = Field(
        default_factory=os.getcwd,
        alias="PROJECT_ROOT",
        description="Working tree that is pulled and deployed.",
    )
    timezone: str = Field(
        default="America/Guatemala",
        alias="TIMEZONE",
        description="Timezone used for timestamps in responses and notifications.",
    )
    telegram_bot_token: Optional[str] = Field(
        default=None, alias="TELEGRAM_BOT_TOKEN", description="Telegram bot token."
    )
    telegram_chat_id: Optional[str] = Field(
        default=None, alias="TELEGRAM_CHAT_ID", description="Telegram chat receiving notifications."
    )
    telegram_enabled: bool = Field(
        default=True, alias="TELEGRAM_ENABLED", description="Master switch for notifications."
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGO")
    jwt_issuer: str = Field(default="central_system", alias="JWT_ISSUER")
    jwt_audience: str = Field(default="central_system", alias="JWT_AUDIENCE")
    jwt_expiration: int = Field(
        default=3600, alias="JWT_EXPIRATION", description="Issued token lifetime in seconds."
    )
    jwt_leeway: int = Field(
        default=30, alias="JWT_LEEWAY", description="Clock skew tolerated when verifying tokens."
    )
    deployment_enabled: bool = Field(
        default=True,
        alias="DEPLOYMENT_ENABLED",
        description="Run the deployment steps after a successful pull.",
    )
    auto_install: bool = Field(
        default=True,
        alias="AUTO_COMPOSER",
        description="Allow dependency installation after a pull.",
    )
    backup_commits: bool = Field(
        default=True,
        alias="BACKUP_COMMITS",
        description="Save the current commit before every pull.",
    )
    max_backup_age_hours: int = Field(default=168, alias="MAX_BACKUP_AGE_HOURS")
    clear_cache: bool = Field(default=False, alias="CLEAR_CACHE")
    fix_permissions: bool = Field(default=False, alias="FIX_PERMISSIONS")
    custom_script: Optional[str] = Field(
        default=None, alias="CUSTOM_SCRIPT", description="Optional bash script run after deploy."
    )
    executable_files: List[str] = Field(
        default_factory=list,
        alias="EXECUTABLE_FILES",
        description="Comma-separated project-relative files kept executable.",
    )
    dependency_manager: Literal["composer", "npm", "pip"] = Field(
        default="composer", alias="DEPENDENCY_MANAGER"
    )
    validate_webhook_ips: bool = Field(
        default=False,
        alias="VALIDATE_GITLAB_IPS",
        description="Reject webhook deliveries from addresses outside allowed_ips.",
    )
    trust_proxy_headers: bool = Field(
        default=False,
        alias="TRUST_PROXY_HEADERS",
        description=(
            "Take the client address from X-Forwarded-For and similar headers. "
            "Clients can forge these, so enable only behind a proxy that overwrites them."
        ),
    )
    allowed_ips: List[str] = Field(
        default_factory=list,
        alias="ALLOWED_IPS",
        description="Comma-separated CIDR ranges accepted for webhook deliveries.",
    )

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("executable_files", "allowed_ips", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("jwt_secret", "webhook_secret", "telegram_bot_token", "telegram_chat_id", "custom_script")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        source = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            legacy = field.alias or name.upper()
            value = resolve_env(source, legacy)
            if value is not None:
                values[name] = value
        return cls.model_validate(values)

    @property
    def effective_webhook_secret(self) -> Optional[str]:
        return self.webhook_secret or self.jwt_secret

    @property
    def project_path(self) -> Path:
        return Path(self.project_root)

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %s; falling back to UTC", self.timezone)
            return ZoneInfo("UTC")

    def validate_runtime(self) -> "Settings":
        """Fail fast on configuration that makes the agent unusable."""
        if not self.jwt_secret:
            raise ConfigError(f"{ENV_PREFIX}JWT_SECRET is required")
        if not git_binary_exists(self.git_binary):
            raise ConfigError(f"Git binary not found at: {self.git_binary}")
        if not self.project_path.is_dir():
            raise ConfigError(f"Project root directory not found: {self.project_root}")
        return self


def resolve_env(environ: Mapping[str, str], legacy_key: str) -> Optional[str]:
    """Return the prefixed variable if set, else the legacy one (deprecated)."""
    prefixed_key = f"{ENV_PREFIX}{legacy_key}"
    if prefixed_key in environ:
        return environ[prefixed_key]
    if legacy_key in environ:
        logger.warning(
            "Environment variable %s is deprecated; use %s instead.",
            legacy_key,
            prefixed_key,
        )
        return environ[legacy_key]
    return None


def git_binary_exists(binary: str) -> bool:
    if os.sep in binary or Path(binary).is_absolute():
        return Path(binary).exists()
    return shutil.which(binary) is not None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    return Settings.from_env(environ).validate_runtime()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated Settings instance built from the environment."""
    return load_settings()
