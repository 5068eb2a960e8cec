from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from git_deploy.domain.errors import ExecError
from git_deploy.models import CommandOutcome


logger = logging.getLogger("git-deploy.exec")


class CommandExecutor:
    """Runs external commands and captures exit code plus merged output.

    A non-zero exit is reported through ``CommandOutcome.success``; only a
    failure to spawn the process raises ``ExecError``.
    """

    async def run(self, command: Sequence[str], *, cwd: Optional[Path] = None) -> CommandOutcome:
        argv = [str(part) for part in command]
        if not argv:
            raise ExecError(argv, "empty command")
        if cwd is not None and not Path(cwd).is_dir():
            raise ExecError(argv, f"working directory missing: {cwd}")

        started = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            logger.error("Unable to spawn %s: %s", argv[0], exc)
            raise ExecError(argv, str(exc)) from exc

        stdout_bytes, _ = await process.communicate()
        elapsed = round(time.monotonic() - started, 2)
        output = stdout_bytes.decode(errors="replace").splitlines()
        returncode = process.returncode if process.returncode is not None else -1

        if returncode != 0:
            logger.info("Command exited with %s: %s", returncode, " ".join(argv))
        return CommandOutcome(
            command=" ".join(argv),
            success=returncode == 0,
            exit_code=returncode,
            output=output,
            execution_time=elapsed,
        )
