from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from git_deploy.schemas import InboundRequest
from git_deploy.services import WebhookDispatcher


class PrettyJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return json.dumps(content, indent=2, ensure_ascii=False, default=str).encode("utf-8")


def build_webhook_router(dispatcher: WebhookDispatcher) -> APIRouter:
    router = APIRouter(tags=["webhook"])

    async def handle(request: Request) -> PrettyJSONResponse:
        inbound = InboundRequest(
            headers=request.headers,
            body=await request.body(),
            client_ip=request.client.host if request.client else None,
            host=request.headers.get("host"),
        )
        outcome = await dispatcher.handle(inbound)
        return PrettyJSONResponse(content=outcome.body, status_code=int(outcome.status_code))

    router.add_api_route(
        "/webhook",
        handle,
        methods=["POST"],
        summary="Run a git deploy action (pull, reset, log, deploy, status, rollback).",
    )
    router.add_api_route("/", handle, methods=["POST"], include_in_schema=False)
    return router
