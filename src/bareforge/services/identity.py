# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""OpenID Connect identity bridge.

This is the only module that talks to the identity provider.  Login is
stateless and two-phase: a request without an authorization code yields the
provider URL to redirect the browser to, and the callback request carrying the
code is exchanged for tokens whose user-info claims become the forge identity.

Each operation performs provider discovery with a fresh HTTP client; nothing is
retried, since an authorization code can only be redeemed once.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from bareforge.schemas.forge import OAuthRequest
from bareforge.services.errors import (
    ProviderDiscoveryError,
    TokenExchangeError,
    UserInfoError,
)

logger = logging.getLogger(__name__)

SCOPES = ("openid", "profile", "email")
AVATAR_URL = "https://www.libravatar.org/avatar/{digest}"
DISCOVERY_PATH = "/.well-known/openid-configuration"

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProviderMetadata:
    """The subset of the discovery document used by the login flow."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str = ""
    token_endpoint_auth_methods: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TokenSet:
    access_token: str
    refresh_token: str
    expiry: int  # unix seconds, 0 when the provider sent no lifetime


@dataclass(frozen=True, slots=True)
class Identity:
    login: str
    email: str
    avatar: str
    access_token: str
    refresh_token: str
    expiry: int


@dataclass(frozen=True, slots=True)
class LoginResult:
    identity: Identity | None
    redirect_url: str


# ---------------------------------------------------------------------------
# Claim mapping
# ---------------------------------------------------------------------------


def avatar_url(email: str) -> str:
    """Libravatar URL keyed by the MD5 of the email address."""
    digest = hashlib.md5(email.encode("utf-8")).hexdigest()
    return AVATAR_URL.format(digest=digest)


def login_from_claims(claims: dict[str, Any]) -> str:
    """The ``profile`` claim, falling back to ``email``."""
    for key in ("profile", "email"):
        value = claims.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _json_object(resp: httpx.Response) -> dict[str, Any] | None:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class OIDCIdentityBridge:
    """Authorization-code login and token verification against one provider.

    Parameters
    ----------
    client_id, client_secret:
        Credentials of this adapter at the provider.
    provider_url:
        Issuer URL; discovery reads ``<provider_url>/.well-known/openid-configuration``.
    redirect_url:
        Callback URL registered at the provider.
    timeout:
        Seconds allowed for each HTTP round trip.
    transport:
        Optional httpx transport, used to plug in a fake provider.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        provider_url: str,
        redirect_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._provider_url = provider_url.rstrip("/")
        self._redirect_url = redirect_url
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
            follow_redirects=True,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def begin_or_complete_login(self, request: OAuthRequest) -> LoginResult:
        """Return a redirect URL, plus the identity once a code is present."""
        async with self._client() as client:
            metadata = await self._discover(client)
            redirect_url = self.authorization_url(metadata, request.state)

            if request.error:
                logger.error(
                    "OIDC provider returned error %s: %s",
                    request.error,
                    request.error_description,
                )
                raise TokenExchangeError(
                    f"authorization failed with {request.error!r}: "
                    f"{request.error_description}"
                )
            if not request.code:
                return LoginResult(identity=None, redirect_url=redirect_url)

            tokens = await self._exchange(client, metadata, request.code)
            claims = await self._userinfo(client, metadata, tokens.access_token)

        login = login_from_claims(claims)
        if not login:
            logger.error("OIDC user info carries neither profile nor email")
            raise UserInfoError("user info has neither a profile nor an email claim")

        email = claims.get("email") if isinstance(claims.get("email"), str) else ""
        identity = Identity(
            login=login,
            email=email,
            avatar=avatar_url(email),
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expiry=tokens.expiry,
        )
        logger.info("OIDC login completed for %s", login)
        return LoginResult(identity=identity, redirect_url=redirect_url)

    async def verify_token(self, access_token: str) -> str:
        """Resolve the login behind an already issued access token."""
        async with self._client() as client:
            metadata = await self._discover(client)
            claims = await self._userinfo(client, metadata, access_token)
        login = login_from_claims(claims)
        if not login:
            logger.error("OIDC user info carries neither profile nor email")
            raise UserInfoError("user info has neither a profile nor an email claim")
        return login

    def authorization_url(self, metadata: ProviderMetadata, state: str) -> str:
        """Authorization endpoint URL for the code flow with the given state."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self._redirect_url,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
        }
        separator = "&" if "?" in metadata.authorization_endpoint else "?"
        return f"{metadata.authorization_endpoint}{separator}{urlencode(sorted(params.items()))}"

    # ------------------------------------------------------------------
    # Protocol steps
    # ------------------------------------------------------------------

    async def _discover(self, client: httpx.AsyncClient) -> ProviderMetadata:
        url = f"{self._provider_url}{DISCOVERY_PATH}"
        try:
            resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            logger.error("Could not reach OIDC provider %s: %s", self._provider_url, exc)
            raise ProviderDiscoveryError(
                f"could not reach OIDC provider {self._provider_url}: {exc}"
            ) from exc

        if resp.status_code != 200:
            logger.error("OIDC discovery returned %s", resp.status_code)
            raise ProviderDiscoveryError(
                f"OIDC discovery at {url} returned {resp.status_code}: {resp.text[:200]}"
            )
        data = _json_object(resp)
        if data is None:
            logger.error("OIDC discovery document at %s is not a JSON object", url)
            raise ProviderDiscoveryError(f"OIDC discovery at {url} returned invalid JSON")

        issuer = str(data.get("issuer", ""))
        if issuer.rstrip("/") != self._provider_url:
            logger.error("OIDC issuer mismatch: expected %s got %s", self._provider_url, issuer)
            raise ProviderDiscoveryError(
                f"issuer did not match the provider URL: expected "
                f"{self._provider_url!r} got {issuer!r}"
            )
        for key in ("authorization_endpoint", "token_endpoint"):
            if not data.get(key):
                logger.error("OIDC discovery document lacks %s", key)
                raise ProviderDiscoveryError(f"OIDC discovery document lacks {key!r}")

        return ProviderMetadata(
            issuer=issuer,
            authorization_endpoint=str(data["authorization_endpoint"]),
            token_endpoint=str(data["token_endpoint"]),
            userinfo_endpoint=str(data.get("userinfo_endpoint") or ""),
            token_endpoint_auth_methods=tuple(
                data.get("token_endpoint_auth_methods_supported") or ()
            ),
        )

    async def _exchange(
        self, client: httpx.AsyncClient, metadata: ProviderMetadata, code: str
    ) -> TokenSet:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._redirect_url,
        }
        auth: httpx.BasicAuth | None = None
        methods = metadata.token_endpoint_auth_methods
        if "client_secret_post" in methods and "client_secret_basic" not in methods:
            form["client_id"] = self._client_id
            form["client_secret"] = self._client_secret
        else:
            # RFC 6749 2.3.1: credentials are form-encoded before Basic auth.
            auth = httpx.BasicAuth(
                quote(self._client_id, safe=""), quote(self._client_secret, safe="")
            )

        try:
            resp = await client.post(
                metadata.token_endpoint,
                data=form,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Could not exchange oauth token: %s", exc)
            raise TokenExchangeError(f"could not reach token endpoint: {exc}") from exc

        data = _json_object(resp)
        if resp.status_code >= 400:
            reason = (data or {}).get("error", resp.text[:200])
            logger.error("Token exchange returned %s: %s", resp.status_code, reason)
            raise TokenExchangeError(
                f"token endpoint returned {resp.status_code}: {reason}"
            )
        if data is None or not data.get("access_token"):
            logger.error("Token endpoint response lacks an access token")
            raise TokenExchangeError("token endpoint response lacks an access token")

        expires_in = data.get("expires_in")
        try:
            lifetime = int(expires_in) if expires_in is not None else 0
        except (TypeError, ValueError):
            lifetime = 0
        return TokenSet(
            access_token=str(data["access_token"]),
            refresh_token=str(data.get("refresh_token") or ""),
            expiry=int(time.time()) + lifetime if lifetime > 0 else 0,
        )

    async def _userinfo(
        self, client: httpx.AsyncClient, metadata: ProviderMetadata, access_token: str
    ) -> dict[str, Any]:
        if not metadata.userinfo_endpoint:
            logger.error("OIDC provider has no userinfo endpoint")
            raise UserInfoError("OIDC provider does not advertise a userinfo endpoint")
        try:
            resp = await client.get(
                metadata.userinfo_endpoint,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Could not get user info: %s", exc)
            raise UserInfoError(f"could not reach userinfo endpoint: {exc}") from exc

        if resp.status_code != 200:
            logger.error("User info returned %s", resp.status_code)
            raise UserInfoError(
                f"userinfo endpoint returned {resp.status_code}: {resp.text[:200]}"
            )
        claims = _json_object(resp)
        if claims is None:
            logger.error("User info response is not a JSON object")
            raise UserInfoError("userinfo endpoint returned invalid JSON")
        return claims
