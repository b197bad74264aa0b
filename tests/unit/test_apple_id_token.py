"""Unit tests for Apple identity token verification."""

import time
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from apple_signin.models.errors import IdentityTokenError
from apple_signin.providers.apple_id_token import APPLE_KEYS_URL, AppleIdentityTokenDecoder

from tests.conftest import TEST_CLIENT_ID


@pytest.fixture
def decoder(apple_keys):
    """Decoder whose JWKS fetch returns the test keys."""
    _, _, jwks, _ = apple_keys
    decoder = AppleIdentityTokenDecoder(TEST_CLIENT_ID)
    decoder._fetch_jwks = AsyncMock(return_value=jwks)
    return decoder


@pytest.mark.asyncio
async def test_decode_valid_token(decoder, make_id_token):
    claims = await decoder.decode(make_id_token())

    assert claims["sub"] == "001234.abcdef.0987"
    assert claims["email"] == "user@privaterelay.appleid.com"
    assert claims["aud"] == TEST_CLIENT_ID


@pytest.mark.asyncio
async def test_decode_caches_keys(decoder, make_id_token):
    await decoder.decode(make_id_token())
    await decoder.decode(make_id_token())
    decoder._fetch_jwks.assert_awaited_once()


@pytest.mark.asyncio
async def test_decode_refetches_after_ttl(decoder, make_id_token):
    decoder.cache_ttl = 0
    await decoder.decode(make_id_token())
    await decoder.decode(make_id_token())
    assert decoder._fetch_jwks.await_count == 2


@pytest.mark.asyncio
async def test_decode_refetches_on_unknown_kid(decoder, make_id_token):
    await decoder.decode(make_id_token())

    with pytest.raises(IdentityTokenError):
        await decoder.decode(make_id_token(kid="rotated-kid"))
    assert decoder._fetch_jwks.await_count == 2


@pytest.mark.asyncio
async def test_decode_rejects_bad_signature(decoder, make_id_token, apple_keys):
    _, _, _, untrusted_private_pem = apple_keys
    with pytest.raises(IdentityTokenError) as excinfo:
        await decoder.decode(make_id_token(key=untrusted_private_pem))
    assert "validation failed" in excinfo.value.message


@pytest.mark.asyncio
async def test_decode_rejects_expired_token(decoder, make_id_token):
    token = make_id_token({"exp": int(time.time()) - 60})
    with pytest.raises(IdentityTokenError):
        await decoder.decode(token)


@pytest.mark.asyncio
async def test_decode_rejects_wrong_audience(decoder, make_id_token):
    with pytest.raises(IdentityTokenError):
        await decoder.decode(make_id_token({"aud": "com.example.other"}))


@pytest.mark.asyncio
async def test_decode_rejects_wrong_issuer(decoder, make_id_token):
    with pytest.raises(IdentityTokenError):
        await decoder.decode(make_id_token({"iss": "https://evil.example.com"}))


@pytest.mark.asyncio
@pytest.mark.parametrize("id_token", [None, ""])
async def test_decode_requires_token(decoder, id_token):
    with pytest.raises(IdentityTokenError) as excinfo:
        await decoder.decode(id_token)
    assert "did not include an id_token" in excinfo.value.message
    decoder._fetch_jwks.assert_not_awaited()


@pytest.mark.asyncio
async def test_decode_rejects_malformed_token(decoder):
    with pytest.raises(IdentityTokenError):
        await decoder.decode("not-a-jwt")


@pytest.mark.asyncio
async def test_fetch_jwks_uses_httpx(apple_keys):
    _, _, jwks, _ = apple_keys

    mock_response = MagicMock()
    mock_response.json = MagicMock(return_value=jwks)
    mock_response.raise_for_status = MagicMock()

    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=mock_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)

    decoder = AppleIdentityTokenDecoder(TEST_CLIENT_ID)
    with patch("httpx.AsyncClient", return_value=mock_client):
        result = await decoder._fetch_jwks()

    assert result == jwks
    mock_client.get.assert_awaited_once_with(APPLE_KEYS_URL)


@pytest.mark.asyncio
async def test_fetch_jwks_failure_raises_identity_error(make_id_token):
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)

    decoder = AppleIdentityTokenDecoder(TEST_CLIENT_ID)
    with patch("httpx.AsyncClient", return_value=mock_client):
        with pytest.raises(IdentityTokenError) as excinfo:
            await decoder.decode(make_id_token())

    assert "Failed to fetch Apple public keys" in excinfo.value.message


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch(decoder, make_id_token):
    await decoder.decode(make_id_token())
    decoder.clear_cache()
    await decoder.decode(make_id_token())
    assert decoder._fetch_jwks.await_count == 2


@pytest.mark.asyncio
async def test_key_lookup_without_kid_uses_fresh_cache(decoder, make_id_token):
    await decoder.decode(make_id_token())
    await decoder._key_set(None)
    decoder._fetch_jwks.assert_awaited_once()


@pytest.mark.asyncio
async def test_decode_accepts_explicit_audience(decoder, make_id_token):
    token = make_id_token({"aud": "com.example.other"})
    claims = await decoder.decode(token, audience="com.example.other")
    assert claims["aud"] == "com.example.other"

    with pytest.raises(IdentityTokenError):
        await decoder.decode(make_id_token(), audience="com.example.other")
