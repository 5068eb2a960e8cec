from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from git_deploy.domain.errors import ConfigError, ExecError, GitError
from git_deploy.models import CommandOutcome, DeploymentResult
from git_deploy.services.executor import CommandExecutor
from git_deploy.services.git_service import GitRepository
from git_deploy.settings import Settings


logger = logging.getLogger("git-deploy.deploy")


@dataclass(frozen=True)
class DependencyManager:
    name: str
    manifests: tuple[str, ...]
    candidates: tuple[str, ...]
    install_args: tuple[str, ...]


DEPENDENCY_MANAGERS: Dict[str, DependencyManager] = {
    "composer": DependencyManager(
        name="composer",
        manifests=("composer.json", "composer.lock"),
        candidates=(
            "/usr/local/bin/composer",
            "/usr/bin/composer",
            "/usr/local/bin/composer.phar",
            "/usr/bin/composer.phar",
            "composer",
            "composer.phar",
        ),
        install_args=("install", "--no-dev", "--optimize-autoloader"),
    ),
    "npm": DependencyManager(
        name="npm",
        manifests=("package.json", "package-lock.json"),
        candidates=("/usr/local/bin/npm", "/usr/bin/npm", "npm"),
        install_args=("ci", "--omit=dev"),
    ),
    "pip": DependencyManager(
        name="pip",
        manifests=("requirements.txt",),
        candidates=("/usr/local/bin/pip3", "/usr/bin/pip3", "pip3", "pip"),
        install_args=("install", "-r", "requirements.txt"),
    ),
}

CACHE_DIRECTORIES = ("cache", "tmp", "storage/cache")
ARTISAN_CLEAR_COMMANDS = ("cache:clear", "config:clear", "view:clear")


class DeploymentService:
    """Post-pull deployment: dependency install plus maintenance tasks.

    ``deploy`` always returns a ``DeploymentResult``. Command failures are
    recorded in the result; only an unusable project root raises.
    """

    def __init__(self, settings: Settings, git: GitRepository, executor: CommandExecutor):
        self.settings = settings
        self.git = git
        self.executor = executor
        self.manager = DEPENDENCY_MANAGERS[settings.dependency_manager]
        self.display_timezone = settings.tzinfo

    def _resolve_root(self) -> Path:
        root = self.settings.project_path
        if not root.is_dir():
            raise ConfigError(f"Project root directory not found: {root}")
        return root.resolve()

    async def deploy(self, force_dependency_install: bool = False) -> DeploymentResult:
        started = time.monotonic()
        timestamp = datetime.now(self.display_timezone)
        root = self._resolve_root()

        dependency_changes = force_dependency_install
        if not dependency_changes and self.settings.auto_install:
            dependency_changes = await self.has_manifest_changes(root)

        success = True
        error: Optional[str] = None
        install_outcome: Optional[CommandOutcome] = None
        if dependency_changes:
            install_outcome = await self.run_dependency_install(root)
            if not install_outcome.success:
                success = False
                error = f"{self.manager.name} install failed (exit code {install_outcome.exit_code})"
                logger.warning("Dependency install failed: %s", install_outcome.output[-5:])

        additional_tasks = await self.run_additional_tasks(root)

        result = DeploymentResult(
            success=success,
            timestamp=timestamp,
            dependency_changes=dependency_changes,
            dependency_install_outcome=install_outcome,
            additional_tasks=additional_tasks,
            execution_time=round(time.monotonic() - started, 2),
            error=error,
        )
        logger.info(
            "Deployment finished success=%s dependency_changes=%s tasks=%s in %.2fs",
            result.success,
            result.dependency_changes,
            sorted(additional_tasks),
            result.execution_time,
        )
        return result

    async def has_manifest_changes(self, root: Path) -> bool:
        if not (root / self.manager.manifests[0]).exists():
            return False
        try:
            commit = await self.git.last_commit_touching(self.manager.manifests)
            if not commit:
                return False
            changed = await self.git.changed_files(commit)
        except GitError as exc:
            # Re-install rather than silently skip when the history is unreadable.
            logger.warning("Error checking %s changes, assuming changed: %s", self.manager.name, exc)
            return True
        return any(path in self.manager.manifests for path in changed)

    def find_binary(self) -> Optional[str]:
        for candidate in self.manager.candidates:
            if os.path.isabs(candidate):
                if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                    return candidate
                continue
            located = shutil.which(candidate)
            if located:
                return located
        return None

    async def run_dependency_install(self, root: Path) -> CommandOutcome:
        binary = self.find_binary()
        if not binary:
            return CommandOutcome.failure(
                f"{self.manager.name} {' '.join(self.manager.install_args)}",
                f"{self.manager.name} binary not found",
            )
        return await self._run_safely([binary, *self.manager.install_args], root)

    async def run_additional_tasks(self, root: Path) -> Dict[str, CommandOutcome]:
        tasks: Dict[str, CommandOutcome] = {}
        if self.settings.clear_cache:
            tasks["cache_clear"] = await self._run_task("cache_clear", self._cache_clear_commands(root), root)
        if self.settings.fix_permissions:
            tasks["permissions"] = await self._run_task("permissions", self._permission_commands(root), root)
        script = self._custom_script_path(root)
        if script is not None:
            tasks["custom_script"] = await self._run_task("custom_script", [["bash", str(script)]], root)
        return tasks

    def _cache_clear_commands(self, root: Path) -> List[List[str]]:
        commands: List[List[str]] = []
        if (root / "artisan").exists():
            commands.extend(["php", "artisan", sub] for sub in ARTISAN_CLEAR_COMMANDS)
        for relative in CACHE_DIRECTORIES:
            directory = root / relative
            if directory.is_dir():
                commands.append(["find", str(directory), "-type", "f", "-name", "*.cache", "-delete"])
        return commands

    def _permission_commands(self, root: Path) -> List[List[str]]:
        git_dir = str(root / ".git")
        commands = [
            ["find", str(root), "-path", git_dir, "-prune", "-o", "-type", "f", "-exec", "chmod", "644", "{}", "+"],
            ["find", str(root), "-path", git_dir, "-prune", "-o", "-type", "d", "-exec", "chmod", "755", "{}", "+"],
        ]
        for relative in self.settings.executable_files:
            target = root / relative.lstrip("/")
            if target.exists():
                commands.append(["chmod", "+x", str(target)])
        return commands

    def _custom_script_path(self, root: Path) -> Optional[Path]:
        if not self.settings.custom_script:
            return None
        script = Path(self.settings.custom_script)
        if not script.is_absolute():
            script = root / script
        if not script.exists():
            logger.warning("Custom deployment script not found: %s", script)
            return None
        return script

    async def _run_task(self, name: str, commands: Sequence[List[str]], root: Path) -> CommandOutcome:
        outcomes = [await self._run_safely(command, root) for command in commands]
        combined = CommandOutcome.combine(outcomes, empty_message=f"{name}: nothing to do")
        if not combined.success:
            logger.warning("Deployment task %s failed: %s", name, combined.command)
        return combined

    async def _run_safely(self, command: List[str], root: Path) -> CommandOutcome:
        try:
            return await self.executor.run(command, cwd=root)
        except ExecError as exc:
            return CommandOutcome.failure(" ".join(command), exc.message)
