from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from git_deploy.domain.errors import ExecError, GitError
from git_deploy.models import CommitEntry, CommitLog, RepositoryStatus
from git_deploy.services.executor import CommandExecutor
from git_deploy.settings import Settings, git_binary_exists


logger = logging.getLogger("git-deploy.git")

LOG_FORMAT = "%h|%s|%an|%ae|%ad|%cn|%ce|%cd"
LOG_FIELDS = (
    "hash",
    "message",
    "author_name",
    "author_email",
    "author_date",
    "committer_name",
    "committer_email",
    "commit_date",
)
LAST_COMMIT_FORMAT = "%H|%s|%an|%ae|%ad"
STASH_EXCLUDES = (":!.htaccess", ":!public/.htaccess")


def parse_porcelain(lines: Iterable[str]) -> Dict[str, List[str]]:
    """Bucket ``git status --porcelain`` lines by change type."""
    buckets: Dict[str, List[str]] = {
        "modified": [],
        "added": [],
        "deleted": [],
        "untracked": [],
    }
    for line in lines:
        if not line or len(line) < 3:
            continue
        code = line[:2]
        path = line[3:].strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if code == "??":
            buckets["untracked"].append(path)
        elif code == "!!":
            continue
        elif "D" in code:
            buckets["deleted"].append(path)
        elif code.strip() == "A":
            buckets["added"].append(path)
        elif code.strip():
            buckets["modified"].append(path)
    return buckets


def parse_commit_log(lines: Iterable[str]) -> List[CommitEntry]:
    """Parse LOG_FORMAT records, dropping any line with the wrong field count."""
    entries: List[CommitEntry] = []
    for line in lines:
        if not line:
            continue
        parts = line.split("|")
        if len(parts) != len(LOG_FIELDS):
            logger.debug("Skipping malformed log record: %s", line)
            continue
        entries.append(CommitEntry(**dict(zip(LOG_FIELDS, parts))))
    return entries


class GitRepository:
    """Git operations against the configured working tree."""

    def __init__(self, git_binary: str, project_root: Path | str, executor: CommandExecutor):
        if not git_binary_exists(git_binary):
            raise GitError(f"Git binary not found at: {git_binary}")
        root = Path(project_root)
        if not root.is_dir() or not (root / ".git").exists():
            raise GitError(f"Failed to open Git repository: {root} is not a git working tree")
        self.git_binary = git_binary
        self.project_root = root
        self.executor = executor

    @classmethod
    def from_settings(cls, settings: Settings, executor: CommandExecutor) -> "GitRepository":
        return cls(settings.git_binary, settings.project_path, executor)

    async def _git(self, *args: str, action: str) -> List[str]:
        command = [self.git_binary, *args]
        try:
            outcome = await self.executor.run(command, cwd=self.project_root)
        except ExecError as exc:
            raise GitError(f"Failed to {action}: {exc.message}") from exc
        if not outcome.success:
            detail = "\n".join(outcome.output).strip() or f"exit code {outcome.exit_code}"
            logger.warning("git %s failed (%s): %s", args[0], outcome.exit_code, detail)
            raise GitError(
                f"Failed to {action}: {detail}",
                details={"command": outcome.command, "exit_code": outcome.exit_code},
            )
        return outcome.output

    async def current_branch(self) -> str:
        lines = await self._git("rev-parse", "--abbrev-ref", "HEAD", action="get current branch")
        return lines[0].strip() if lines else ""

    async def current_commit_hash(self) -> str:
        lines = await self._git("rev-parse", "HEAD", action="get current commit hash")
        if not lines or not lines[0].strip():
            raise GitError("Failed to get current commit hash: empty output")
        return lines[0].strip()

    async def status(self) -> RepositoryStatus:
        lines = await self._git("status", "--porcelain", action="get repository status")
        buckets = parse_porcelain(lines)
        return RepositoryStatus(
            branch=await self.current_branch(),
            commit_hash=await self.current_commit_hash(),
            **buckets,
        )

    async def is_clean(self) -> bool:
        return (await self.status()).clean

    async def commit_log(self, limit: int = 10) -> CommitLog:
        lines = await self._git(
            "log",
            f"--pretty=format:{LOG_FORMAT}",
            "--date=iso",
            "-n",
            str(limit),
            action="get commit log",
        )
        return CommitLog(commits=parse_commit_log(lines), branch=await self.current_branch())

    async def last_commit_info(self) -> Dict[str, str]:
        lines = await self._git(
            "log", "-1", f"--pretty=format:{LAST_COMMIT_FORMAT}", "--date=iso",
            action="get last commit info",
        )
        parts = lines[0].split("|") if lines else []
        if len(parts) != 5:
            raise GitError("Failed to get last commit info: invalid commit format")
        return dict(zip(("hash", "message", "author_name", "author_email", "date"), parts))

    async def stash(self) -> List[str]:
        return await self._git(
            "stash", "push", "--keep-index", "--", ".", *STASH_EXCLUDES,
            action="stash changes",
        )

    async def stash_pop(self) -> List[str]:
        return await self._git("stash", "pop", action="pop stash")

    async def pull(self) -> List[str]:
        return await self._git("pull", action="pull changes")

    async def reset_to_commit(self, commit_id: str) -> List[str]:
        return await self._git("reset", "--hard", commit_id, action=f"reset to commit {commit_id}")

    async def last_commit_touching(self, paths: Iterable[str]) -> Optional[str]:
        lines = await self._git(
            "log", "-1", "--pretty=format:%H", "--", *paths,
            action="find last commit touching paths",
        )
        commit = lines[0].strip() if lines else ""
        return commit or None

    async def changed_files(self, commit: str) -> List[str]:
        lines = await self._git(
            "diff-tree", "--no-commit-id", "--name-only", "-r", commit,
            action=f"list files changed in {commit}",
        )
        return [line.strip() for line in lines if line.strip()]

    async def raw_command(self, *args: str) -> List[str]:
        if not args:
            raise GitError("Failed to execute git command: no arguments")
        return await self._git(*args, action="execute git command")
