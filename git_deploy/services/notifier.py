from __future__ import annotations

import asyncio
import http.client
import json
import logging
import socket
import traceback
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from urllib import error as urllib_error, parse as urllib_parse, request as urllib_request
from zoneinfo import ZoneInfo

from git_deploy.domain.errors import NotificationError
from git_deploy.models import DeploymentResult
from git_deploy.settings import Settings


logger = logging.getLogger("git-deploy.notify")

TELEGRAM_API_BASE = "https://api.telegram.org"
REQUEST_TIMEOUT_SECONDS = 10
STACK_TRACE_LIMIT = 500


def _code(value: Any) -> str:
    """Render a value inside Markdown backticks without breaking the span."""
    return str(value).replace("`", "'")


class TelegramNotifier:
    """Best-effort Telegram delivery. Every public send returns a bool and never raises."""

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        *,
        enabled: bool = True,
        display_timezone: Optional[ZoneInfo] = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled
        self.display_timezone = display_timezone or ZoneInfo("UTC")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramNotifier":
        return cls(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            enabled=settings.telegram_enabled,
            display_timezone=settings.tzinfo,
        )

    def is_enabled(self) -> bool:
        return bool(self.enabled and self.bot_token and self.chat_id)

    def _now(self) -> str:
        return datetime.now(self.display_timezone).strftime("%Y-%m-%d %H:%M:%S")

    async def send_message(self, message: str, parse_mode: Optional[str] = "Markdown") -> bool:
        if not self.is_enabled():
            return False
        payload: Dict[str, Any] = {"chat_id": self.chat_id, "text": message}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            await asyncio.to_thread(self._call_telegram, "sendMessage", payload)
        except NotificationError as exc:
            logger.warning("Telegram notification failed: %s", exc)
            return False
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error while sending Telegram notification")
            return False
        return True

    async def send_error_notification(
        self, exc: BaseException, context: str = "", *, host: Optional[str] = None
    ) -> bool:
        if not self.is_enabled():
            return False
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if len(trace) > STACK_TRACE_LIMIT:
            trace = trace[-STACK_TRACE_LIMIT:]
        message = (
            "*❌ GitDeploy Error ❌*\n\n"
            f"*Context:* `{_code(context)}`\n"
            f"*Host:* `{_code(host or socket.gethostname())}`\n"
            f"*Date/Time:* `{self._now()}`\n"
            f"*Error:* `{_code(exc)}`\n"
            f"*Stack Trace:*\n```\n{trace.replace('```', '')}\n```"
        )
        return await self.send_message(message)

    async def send_deployment_notification(
        self, result: DeploymentResult, *, manual: bool = False, forced: bool = False
    ) -> bool:
        if not self.is_enabled():
            return False
        status = "✅ Success" if result.success else "❌ Failed"
        kind = "Manual" if manual else "Automatic"
        message = (
            f"*🔧 {kind} Deployment Executed*\n\n"
            f"*Status:* `{status}`\n"
            f"*Dependency changes:* `{'Yes' if result.dependency_changes else 'No'}`\n"
            f"*Forced:* `{'Yes' if forced else 'No'}`\n"
            f"*Date/Time:* `{result.timestamp.strftime('%Y-%m-%d %H:%M:%S')}`"
        )
        if result.dependency_install_outcome is not None:
            install = "✅ Success" if result.dependency_install_outcome.success else "❌ Failed"
            message += f"\n*Dependency install:* `{install}`"
        if result.error:
            message += f"\n*Error:* `{_code(result.error)}`"
        return await self.send_message(message)

    async def send_pull_notification(
        self,
        *,
        branch: str,
        stash_output: str,
        source: str,
        host: Optional[str] = None,
        deployment_summary: str = "",
    ) -> bool:
        if not self.is_enabled():
            return False
        stash_text = stash_output.strip() or "No local changes to stash."
        message = (
            "*🚀 New Pull Executed 🚀*\n\n"
            f"*Host:* `{_code(host or socket.gethostname())}`\n"
            f"*Branch:* `{_code(branch)}`\n"
            f"*Date/Time:* `{self._now()}`\n"
            f"*Source:* `{_code(source)}`\n\n"
            "*Results:*\n"
            f"Stash:\n```\n{stash_text.replace('```', '')}\n```\n"
            "Pull: `✅ Success`\n"
            f"{deployment_summary}"
        )
        return await self.send_message(message)

    async def send_reset_notification(self, commit_id: str) -> bool:
        return await self.send_formatted_message(
            "Git Reset Executed", {"commit": commit_id, "date_time": self._now()}, icon="🔄"
        )

    async def send_rollback_notification(self, rollback: Mapping[str, Any]) -> bool:
        return await self.send_formatted_message(
            "Rollback Executed",
            {
                "commit": rollback.get("rollback_commit"),
                "branch": rollback.get("rollback_branch"),
                "backup_saved_at": rollback.get("backup_timestamp"),
                "date_time": self._now(),
            },
            icon="⏪",
        )

    async def send_formatted_message(
        self, title: str, data: Mapping[str, Any], icon: str = "📝"
    ) -> bool:
        if not self.is_enabled():
            return False
        lines = [f"*{icon} {title}*", ""]
        for key, value in data.items():
            label = key.replace("_", " ").capitalize()
            if isinstance(value, bool):
                value = "Yes" if value else "No"
            elif isinstance(value, (list, tuple)):
                value = ", ".join(str(item) for item in value)
            lines.append(f"*{label}:* `{_code(value)}`")
        return await self.send_message("\n".join(lines))

    async def get_bot_info(self) -> Optional[Dict[str, Any]]:
        if not self.is_enabled():
            return None
        try:
            payload = await asyncio.to_thread(self._call_telegram, "getMe", None)
        except NotificationError as exc:
            logger.warning("Telegram getMe failed: %s", exc)
            return None
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error while calling Telegram getMe")
            return None
        result = payload.get("result")
        return result if isinstance(result, dict) else None

    async def test_connection(self) -> bool:
        return await self.get_bot_info() is not None

    def _call_telegram(self, method: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        url = f"{TELEGRAM_API_BASE}/bot{self.bot_token}/{method}"
        headers = {"User-Agent": "GitDeploy/1.0"}
        body = None
        if data is not None:
            body = urllib_parse.urlencode(data).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        request = urllib_request.Request(url, data=body, headers=headers, method="POST" if body else "GET")
        try:
            with urllib_request.urlopen(request, timeout=REQUEST_TIMEOUT_SECONDS) as response:
                raw = response.read()
        except urllib_error.HTTPError as exc:
            details = exc.read().decode("utf-8", errors="ignore") or exc.reason
            raise NotificationError(f"Telegram API HTTP {exc.code}: {details}") from exc
        except (urllib_error.URLError, http.client.HTTPException, OSError) as exc:
            raise NotificationError(f"Telegram request failed: {exc!r}") from exc

        try:
            payload = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise NotificationError("Failed to parse Telegram response") from exc
        if not isinstance(payload, dict) or payload.get("ok") is not True:
            raise NotificationError(f"Telegram API response error: {payload}")
        return payload
