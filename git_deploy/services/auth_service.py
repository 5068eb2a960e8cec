from __future__ import annotations

import hashlib
import hmac
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence

import jwt

from git_deploy.domain.errors import AuthError, ConfigError
from git_deploy.schemas import InboundRequest
from git_deploy.settings import Settings


logger = logging.getLogger("git-deploy.auth")

GITLAB_EVENT_HEADER = "X-Gitlab-Event"
GITLAB_TOKEN_HEADER = "X-Gitlab-Token"
GITLAB_EVENT_UUID_HEADER = "X-Gitlab-Event-UUID"
GITLAB_SIGNATURE_HEADER = "X-Gitlab-Signature"

# GitLab.com webhook source ranges, used when no allow-list is configured.
DEFAULT_GITLAB_RANGES = (
    "172.65.192.0/18",
    "185.199.108.0/22",
    "192.30.252.0/22",
    "140.82.112.0/20",
    "143.55.64.0/20",
    "34.74.90.64/26",
    "34.74.226.0/26",
)

CLIENT_IP_HEADERS = (
    "CF-Connecting-IP",
    "Client-IP",
    "X-Forwarded-For",
    "X-Forwarded",
    "X-Cluster-Client-IP",
    "Forwarded-For",
    "Forwarded",
)


@dataclass(frozen=True)
class AuthContext:
    method: str
    claims: Dict[str, Any] = field(default_factory=dict)
    event: Optional[str] = None
    event_uuid: Optional[str] = None

    @property
    def via_webhook(self) -> bool:
        return self.method == "webhook"


class BearerTokenAuthenticator:
    """Issues and verifies the rotating bearer tokens."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        algorithm: str = "HS256",
        issuer: str = "central_system",
        audience: str = "central_system",
        expiration: int = 3600,
        leeway: int = 30,
    ) -> None:
        if not secret:
            raise ConfigError("JWT secret not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.expiration = int(expiration)
        self.leeway = int(leeway)

    @classmethod
    def from_settings(cls, settings: Settings) -> "BearerTokenAuthenticator":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            expiration=settings.jwt_expiration,
            leeway=settings.jwt_leeway,
        )

    def applies_to(self, request: InboundRequest) -> bool:
        return request.header("Authorization") is not None

    def generate_token(self, custom_claims: Optional[Dict[str, Any]] = None) -> str:
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(seconds=self.expiration)
        payload: Dict[str, Any] = {
            "iss": self.issuer,
            "aud": self.audience,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        payload.update(custom_claims or {})
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        return jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            audience=self.audience,
            issuer=self.issuer,
            leeway=self.leeway,
            options={"require": ["exp", "iss"]},
        )

    def authenticate(self, request: InboundRequest) -> AuthContext:
        header = request.header("Authorization")
        if not header:
            raise AuthError("Unauthorized: No token provided", 401)
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthError("Unauthorized: Malformed Authorization header", 401)

        try:
            claims = self.decode_token(token.strip())
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Unauthorized: Token expired", 401) from exc
        except jwt.InvalidIssuerError as exc:
            raise AuthError("Unauthorized: Invalid token issuer", 401) from exc
        except jwt.InvalidAudienceError as exc:
            raise AuthError("Unauthorized: Invalid token audience", 401) from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError(f"Unauthorized: {exc}", 401) from exc
        return AuthContext(method="bearer", claims=claims)


class WebhookAuthenticator:
    """Validates GitLab webhook deliveries against the shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        allowed_ips: Sequence[str] = (),
        validate_ips: bool = False,
        trust_proxy_headers: bool = False,
    ) -> None:
        if not secret:
            raise ConfigError("Webhook secret not configured")
        self.secret = secret
        self.validate_ips = validate_ips
        self.trust_proxy_headers = trust_proxy_headers
        ranges = list(allowed_ips) or list(DEFAULT_GITLAB_RANGES)
        self.allowed_networks = [ipaddress.ip_network(item, strict=False) for item in ranges]

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookAuthenticator":
        return cls(
            settings.effective_webhook_secret,
            allowed_ips=settings.allowed_ips,
            validate_ips=settings.validate_webhook_ips,
            trust_proxy_headers=settings.trust_proxy_headers,
        )

    def applies_to(self, request: InboundRequest) -> bool:
        return bool(request.header(GITLAB_EVENT_HEADER) and request.header(GITLAB_TOKEN_HEADER))

    def authenticate(self, request: InboundRequest) -> AuthContext:
        if not self.applies_to(request):
            raise AuthError("Not a GitLab webhook request", 400)

        token = request.header(GITLAB_TOKEN_HEADER) or ""
        if not hmac.compare_digest(token.encode(), self.secret.encode()):
            raise AuthError("Invalid GitLab webhook token", 403)

        if self.validate_ips:
            client_ip = resolve_client_ip(request, trust_proxy_headers=self.trust_proxy_headers)
            if not self.is_allowed_ip(client_ip):
                logger.warning("Rejected webhook from unlisted address %s", client_ip)
                raise AuthError("Request not from authorized GitLab IP", 403)

        if not self.validate_signature(request):
            raise AuthError("Invalid GitLab webhook signature", 403)

        return AuthContext(
            method="webhook",
            event=request.header(GITLAB_EVENT_HEADER),
            event_uuid=request.header(GITLAB_EVENT_UUID_HEADER),
        )

    def is_allowed_ip(self, address: Optional[str]) -> bool:
        if not address:
            return False
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return False
        return any(ip.version == network.version and ip in network for network in self.allowed_networks)

    def validate_signature(self, request: InboundRequest) -> bool:
        """Check the HMAC-SHA256 payload signature when one was sent."""
        signature = request.header(GITLAB_SIGNATURE_HEADER)
        if not signature:
            return True
        expected = hmac.new(self.secret.encode(), request.body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(signature.lower(), expected)


def resolve_client_ip(request: InboundRequest, *, trust_proxy_headers: bool = False) -> str:
    """Peer address, or the first public address in proxy headers when trusted."""
    if not trust_proxy_headers:
        return request.client_ip or "0.0.0.0"
    for name in CLIENT_IP_HEADERS:
        raw = request.header(name)
        if not raw:
            continue
        candidate = raw.split(",")[0].strip()
        if candidate.lower().startswith("for="):
            candidate = candidate[4:].strip('"')
        try:
            ip = ipaddress.ip_address(candidate)
        except ValueError:
            continue
        if ip.is_global:
            return candidate
    return request.client_ip or "0.0.0.0"


class RequestAuthenticator:
    """Picks exactly one authentication path per request.

    Webhook headers take precedence: when present, the webhook check decides
    and the bearer token is never looked at.
    """

    def __init__(self, webhook: WebhookAuthenticator, bearer: BearerTokenAuthenticator) -> None:
        self.webhook = webhook
        self.bearer = bearer

    def authenticate(self, request: InboundRequest) -> AuthContext:
        if self.webhook.applies_to(request):
            return self.webhook.authenticate(request)
        return self.bearer.authenticate(request)
