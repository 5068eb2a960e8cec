from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from git_deploy.domain.errors import ExecError, NotificationError
from git_deploy.models import CommandOutcome
from git_deploy.services import TelegramNotifier
from git_deploy.settings import Settings


class FakeExecutor:
    """Scripted stand-in for CommandExecutor.

    Responses are matched on the arguments after the program name; the most
    recently registered match wins. Unmatched commands succeed silently.
    """

    def __init__(self) -> None:
        self._responses: List[tuple[Optional[str], tuple[str, ...], Any]] = []
        self.calls: List[List[str]] = []

    def when(
        self,
        *args: str,
        output: Sequence[str] = (),
        exit_code: int = 0,
        program: Optional[str] = None,
    ) -> "FakeExecutor":
        self._responses.append((program, tuple(args), (list(output), exit_code)))
        return self

    def fail_spawn(self, *args: str, program: Optional[str] = None) -> "FakeExecutor":
        self._responses.append((program, tuple(args), ExecError([program or "?", *args], "No such file")))
        return self

    async def run(self, command: Sequence[str], *, cwd: Optional[Path] = None) -> CommandOutcome:
        argv = [str(part) for part in command]
        self.calls.append(argv)
        for program, prefix, response in reversed(self._responses):
            if program is not None and os.path.basename(argv[0]) != program:
                continue
            if tuple(argv[1 : 1 + len(prefix)]) != prefix:
                continue
            if isinstance(response, Exception):
                raise response
            output, exit_code = response
            return CommandOutcome(
                command=" ".join(argv),
                success=exit_code == 0,
                exit_code=exit_code,
                output=output,
                execution_time=0.01,
            )
        return CommandOutcome(command=" ".join(argv), success=True, exit_code=0, output=[])

    def calls_with(self, *args: str) -> List[List[str]]:
        return [call for call in self.calls if tuple(call[1 : 1 + len(args)]) == args]


class RecordingNotifier(TelegramNotifier):
    """Telegram notifier that records messages instead of calling the API."""

    def __init__(self, *, fail: bool = False, enabled: bool = True) -> None:
        super().__init__("bot-token", "chat-id", enabled=enabled)
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    def _call_telegram(self, method: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if self.fail:
            raise NotificationError("Telegram API HTTP 502: Bad Gateway")
        self.sent.append({"method": method, **(data or {})})
        return {"ok": True, "result": {"username": "deploy_bot"}}

    @property
    def texts(self) -> List[str]:
        return [item["text"] for item in self.sent if "text" in item]


class Workspace:
    """Temporary project root with a .git directory and a fake git binary."""

    def __init__(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.root = base / "project"
        (self.root / ".git").mkdir(parents=True)
        self.git_binary = base / "bin" / "git"
        self.git_binary.parent.mkdir()
        self.git_binary.write_text("#!/bin/sh\nexit 0\n")
        self.git_binary.chmod(self.git_binary.stat().st_mode | stat.S_IEXEC)

    def settings(self, **overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "jwt_secret": "test-secret",
            "git_binary": str(self.git_binary),
            "project_root": str(self.root),
            "timezone": "UTC",
            "telegram_enabled": False,
        }
        values.update(overrides)
        return Settings(**values)

    def cleanup(self) -> None:
        self._tmp.cleanup()
