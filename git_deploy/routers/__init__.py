from .health import build_health_router
from .webhook import build_webhook_router

__all__ = ["build_health_router", "build_webhook_router"]
