from __future__ import annotations

import logging
import os
from pathlib import Path


logger = logging.getLogger("git-deploy.env")


def load_local_env(env_path: Path | str = Path(".env"), *, override: bool = False) -> int:
    """Load key=value pairs from a local .env file without extra dependencies.

    Variables already present in the process environment win unless
    ``override`` is set. Returns the number of variables applied.
    """
    path = Path(env_path)
    if not path.exists():
        return 0

    applied = 0
    for raw_line in path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            logger.warning("Skipping malformed .env line: %s", raw_line)
            continue

        key, value = line.split("=", 1)
        clean_key = key.strip()
        clean_value = value.strip().strip('"').strip("'")
        if not override and clean_key in os.environ:
            continue
        os.environ[clean_key] = clean_value
        applied += 1
    logger.info("Loaded %d variables from %s", applied, path)
    return applied
