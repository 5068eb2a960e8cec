from .webhook import ErrorResponse, InboundRequest, WebhookRequest

__all__ = ["ErrorResponse", "InboundRequest", "WebhookRequest"]
