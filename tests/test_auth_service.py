from __future__ import annotations

import hashlib
import hmac
import time
import unittest

import jwt

from git_deploy.domain.errors import AuthError, ConfigError
from git_deploy.schemas import InboundRequest
from git_deploy.services.auth_service import (
    BearerTokenAuthenticator,
    RequestAuthenticator,
    WebhookAuthenticator,
    resolve_client_ip,
)


SECRET = "test-secret"


def _bearer(token: str) -> InboundRequest:
    return InboundRequest(headers={"Authorization": f"Bearer {token}"}, client_ip="127.0.0.1")


def _webhook(token: str = SECRET, **headers: str) -> InboundRequest:
    base = {"X-Gitlab-Event": "Push Hook", "X-Gitlab-Token": token}
    base.update(headers)
    return InboundRequest(headers=base, body=b'{"ref": "refs/heads/main"}', client_ip="172.65.200.10")


class BearerTokenAuthenticatorTest(unittest.TestCase):
    def setUp(self) -> None:
        self.auth = BearerTokenAuthenticator(SECRET)

    def _encode(self, **overrides) -> str:
        now = int(time.time())
        claims = {"iss": "central_system", "aud": "central_system", "iat": now, "exp": now + 600}
        claims.update(overrides)
        return jwt.encode(claims, SECRET, algorithm="HS256")

    def test_generated_token_round_trips(self) -> None:
        token = self.auth.generate_token({"sub": "ci"})
        context = self.auth.authenticate(_bearer(token))
        self.assertEqual(context.method, "bearer")
        self.assertEqual(context.claims["sub"], "ci")
        self.assertEqual(context.claims["exp"] - context.claims["iat"], 3600)

    def test_missing_header(self) -> None:
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(InboundRequest())
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn("No token provided", ctx.exception.message)

    def test_malformed_header(self) -> None:
        request = InboundRequest(headers={"Authorization": "Token abc"})
        with self.assertRaises(AuthError):
            self.auth.authenticate(request)

    def test_expired_token(self) -> None:
        token = self._encode(exp=int(time.time()) - 120)
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(_bearer(token))
        self.assertIn("Token expired", ctx.exception.message)

    def test_expiry_within_leeway_is_accepted(self) -> None:
        token = self._encode(exp=int(time.time()) - 5)
        self.assertEqual(self.auth.authenticate(_bearer(token)).method, "bearer")

    def test_wrong_issuer(self) -> None:
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(_bearer(self._encode(iss="someone_else")))
        self.assertIn("issuer", ctx.exception.message)

    def test_wrong_audience(self) -> None:
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(_bearer(self._encode(aud="other_service")))
        self.assertIn("audience", ctx.exception.message)

    def test_wrong_signature(self) -> None:
        token = jwt.encode(
            {"iss": "central_system", "aud": "central_system", "exp": int(time.time()) + 60},
            "another-secret",
            algorithm="HS256",
        )
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(_bearer(token))
        self.assertEqual(ctx.exception.status_code, 401)

    def test_secret_is_required(self) -> None:
        with self.assertRaises(ConfigError):
            BearerTokenAuthenticator(None)


class WebhookAuthenticatorTest(unittest.TestCase):
    def test_matching_token_is_accepted(self) -> None:
        context = WebhookAuthenticator(SECRET).authenticate(_webhook(**{"X-Gitlab-Event-UUID": "uuid-1"}))
        self.assertTrue(context.via_webhook)
        self.assertEqual(context.event, "Push Hook")
        self.assertEqual(context.event_uuid, "uuid-1")

    def test_token_mismatch_is_forbidden(self) -> None:
        with self.assertRaises(AuthError) as ctx:
            WebhookAuthenticator(SECRET).authenticate(_webhook(token="wrong"))
        self.assertEqual(ctx.exception.status_code, 403)

    def test_ip_allow_list(self) -> None:
        auth = WebhookAuthenticator(SECRET, validate_ips=True)
        self.assertEqual(auth.authenticate(_webhook()).method, "webhook")

        outsider = InboundRequest(
            headers={"X-Gitlab-Event": "Push Hook", "X-Gitlab-Token": SECRET},
            client_ip="8.8.8.8",
        )
        with self.assertRaises(AuthError) as ctx:
            auth.authenticate(outsider)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_custom_ranges_replace_defaults(self) -> None:
        auth = WebhookAuthenticator(SECRET, allowed_ips=["10.0.0.0/8"], validate_ips=True)
        self.assertTrue(auth.is_allowed_ip("10.1.2.3"))
        self.assertFalse(auth.is_allowed_ip("172.65.200.10"))
        self.assertFalse(auth.is_allowed_ip("not-an-ip"))

    def test_signature_checked_when_present(self) -> None:
        auth = WebhookAuthenticator(SECRET)
        body = b'{"ref": "refs/heads/main"}'
        good = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
        self.assertEqual(auth.authenticate(_webhook(**{"X-Gitlab-Signature": good})).method, "webhook")
        with self.assertRaises(AuthError):
            auth.authenticate(_webhook(**{"X-Gitlab-Signature": "0" * 64}))

    def test_client_ip_prefers_public_forwarded_address_when_trusted(self) -> None:
        request = InboundRequest(
            headers={"X-Forwarded-For": "34.74.90.70, 10.0.0.1"}, client_ip="10.0.0.1"
        )
        self.assertEqual(resolve_client_ip(request, trust_proxy_headers=True), "34.74.90.70")
        private = InboundRequest(headers={"X-Forwarded-For": "192.168.0.5"}, client_ip="10.0.0.1")
        self.assertEqual(resolve_client_ip(private, trust_proxy_headers=True), "10.0.0.1")

    def test_forwarded_headers_ignored_by_default(self) -> None:
        request = InboundRequest(
            headers={"X-Forwarded-For": "34.74.90.70"}, client_ip="203.0.113.9"
        )
        self.assertEqual(resolve_client_ip(request), "203.0.113.9")

    def test_forged_forwarded_header_cannot_bypass_allow_list(self) -> None:
        forged = InboundRequest(
            headers={
                "X-Gitlab-Event": "Push Hook",
                "X-Gitlab-Token": SECRET,
                "X-Forwarded-For": "172.65.200.10",
            },
            client_ip="203.0.113.9",
        )
        with self.assertRaises(AuthError) as ctx:
            WebhookAuthenticator(SECRET, validate_ips=True).authenticate(forged)
        self.assertEqual(ctx.exception.status_code, 403)

        behind_proxy = WebhookAuthenticator(SECRET, validate_ips=True, trust_proxy_headers=True)
        self.assertEqual(behind_proxy.authenticate(forged).method, "webhook")


class RequestAuthenticatorTest(unittest.TestCase):
    def setUp(self) -> None:
        self.bearer = BearerTokenAuthenticator(SECRET)
        self.auth = RequestAuthenticator(WebhookAuthenticator(SECRET), self.bearer)

    def test_webhook_headers_take_precedence(self) -> None:
        request = _webhook(token="wrong", Authorization=f"Bearer {self.bearer.generate_token()}")
        with self.assertRaises(AuthError) as ctx:
            self.auth.authenticate(request)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_partial_webhook_headers_fall_back_to_bearer(self) -> None:
        request = InboundRequest(
            headers={
                "X-Gitlab-Event": "Push Hook",
                "Authorization": f"Bearer {self.bearer.generate_token()}",
            }
        )
        self.assertEqual(self.auth.authenticate(request).method, "bearer")


if __name__ == "__main__":
    unittest.main()
