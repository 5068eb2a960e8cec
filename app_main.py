from __future__ import annotations

import logging
import os

from git_deploy.app import create_app
from git_deploy.env_loader import load_local_env
from git_deploy.settings import get_settings


logging.basicConfig(level=logging.INFO)

load_local_env()
settings = get_settings()
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app_main:app",
        host=os.getenv("GITDEPLOY_HOST", "127.0.0.1"),
        port=int(os.getenv("GITDEPLOY_PORT", "9001")),
    )
