"""Verification of Apple identity tokens against Apple's published signing keys."""

import time
from typing import Any

import httpx
from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JoseError, JsonWebKey, JsonWebToken, KeySet

from apple_signin.models.errors import IdentityTokenError
from apple_signin.utils.logging import get_logger

logger = get_logger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"

# Apple signs identity tokens with RS256 only.
_id_token_jwt = JsonWebToken(["RS256"])


def _unverified_kid(id_token: str) -> str | None:
    """Reads the `kid` header of a compact JWS without verifying it."""
    try:
        header = json_loads(urlsafe_b64decode(to_bytes(id_token.split(".")[0])))
    except (ValueError, IndexError) as e:
        raise IdentityTokenError("Identity token is malformed") from e
    if not isinstance(header, dict):
        raise IdentityTokenError("Identity token is malformed")
    return header.get("kid")


class AppleIdentityTokenDecoder:
    """
    Decodes and validates identity tokens issued by Apple.

    Apple's JWKS is cached for `cache_ttl` seconds and refetched once when a token
    references a key id the cache does not know, which covers key rotation.
    """

    def __init__(
        self,
        client_id: str,
        cache_ttl: int = 3600,
        timeout: float = 10.0,
        keys_url: str = APPLE_KEYS_URL,
    ) -> None:
        self.client_id = client_id
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.keys_url = keys_url
        self._jwks: dict[str, Any] | None = None
        self._fetched_at = 0.0

    async def _fetch_jwks(self) -> dict[str, Any]:
        logger.info("apple_jwks_fetching", jwks_uri=self.keys_url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.keys_url)
                response.raise_for_status()
                jwks = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("apple_jwks_fetch_failed", jwks_uri=self.keys_url, error=str(e))
            raise IdentityTokenError(f"Failed to fetch Apple public keys: {e}") from e

        logger.info("apple_jwks_fetch_success", key_count=len(jwks.get("keys", [])))
        return jwks

    def _known_kids(self) -> set[str]:
        if self._jwks is None:
            return set()
        return {key.get("kid") for key in self._jwks.get("keys", [])}

    async def _key_set(self, kid: str | None) -> KeySet:
        expired = self._jwks is None or time.monotonic() - self._fetched_at >= self.cache_ttl
        if expired or (kid is not None and kid not in self._known_kids()):
            self._jwks = await self._fetch_jwks()
            self._fetched_at = time.monotonic()
        return JsonWebKey.import_key_set(self._jwks)

    def clear_cache(self) -> None:
        self._jwks = None
        self._fetched_at = 0.0

    async def decode(self, id_token: str | None, audience: str | None = None) -> dict[str, Any]:
        """
        Verifies the identity token and returns its claims.

        Checks the signature against Apple's keys and the `iss`, `aud` and `exp` claims.
        `audience` is the client id the token must be issued to, defaulting to `client_id`.

        Raises:
            IdentityTokenError: The token is absent, malformed or fails validation.
        """
        if not id_token:
            raise IdentityTokenError("Token response did not include an id_token")

        key_set = await self._key_set(_unverified_kid(id_token))
        try:
            claims = _id_token_jwt.decode(
                id_token,
                key_set,
                claims_options={
                    "iss": {"essential": True, "value": APPLE_ISSUER},
                    "aud": {"essential": True, "value": audience or self.client_id},
                    "exp": {"essential": True},
                },
            )
            claims.validate()
        except JoseError as e:
            logger.warning("apple_id_token_invalid", error=str(e))
            raise IdentityTokenError(f"Identity token validation failed: {e}") from e
        except ValueError as e:
            # Raised by the key set when no key matches the token's kid.
            logger.warning("apple_id_token_unknown_key", error=str(e))
            raise IdentityTokenError(f"Identity token validation failed: {e}") from e

        return dict(claims)
