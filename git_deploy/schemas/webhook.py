from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InboundRequest(BaseModel):
    """Framework-independent view of one webhook delivery."""

    headers: Dict[str, str] = Field(default_factory=dict, description="Lower-cased header map.")
    body: bytes = Field(default=b"", description="Raw request body.")
    client_ip: Optional[str] = Field(default=None, description="Peer address of the connection.")
    host: Optional[str] = Field(default=None, description="Host header, used in notifications.")

    @field_validator("headers", mode="before")
    @classmethod
    def _lower_keys(cls, value: Any) -> Any:
        if hasattr(value, "items"):
            return {str(key).lower(): str(item) for key, item in value.items()}
        return value

    def header(self, name: str) -> Optional[str]:
        value = self.headers.get(name.lower())
        if value is None:
            return None
        return value.strip() or None

    def json_body(self) -> Dict[str, Any]:
        if not self.body:
            return {}
        try:
            payload = json.loads(self.body)
        except (ValueError, UnicodeDecodeError):
            return {}
        return payload if isinstance(payload, dict) else {}


class WebhookRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: Optional[str] = Field(
        default=None, description="pull, reset, log, deploy, status or rollback."
    )
    commit_id: Optional[str] = Field(default=None, description="Target commit for reset.")
    force_composer: bool = Field(
        default=False, description="Force dependency installation for deploy."
    )


class ErrorResponse(BaseModel):
    action: Optional[str] = Field(default=None, description="Action being processed, if resolved.")
    error: str = Field(..., description="HTTP reason phrase.")
    message: str = Field(..., description="Human-readable failure detail.")
