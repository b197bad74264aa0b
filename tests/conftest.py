import os
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from authlib.jose import JsonWebKey, jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from apple_signin.models.auth import StrategyConfig, TokenResult
from apple_signin.providers.apple_id_token import APPLE_ISSUER, AppleIdentityTokenDecoder
from apple_signin.providers.apple_oauth import AppleOAuthClient
from apple_signin.strategies.apple import AppleStrategy
from apple_signin.strategies.base import RequestContext

TEST_CLIENT_ID = "com.example.signin"
TEST_KID = "apple-test-kid"
CALLBACK_URL = "http://testserver/auth/apple/callback"


def pytest_configure(config):
    """
    Loads a local .env if present and sets the environment the application needs at import.
    """
    from dotenv import load_dotenv

    load_dotenv()

    os.environ.setdefault("APPLE_CLIENT_ID", TEST_CLIENT_ID)
    os.environ.setdefault("APPLE_CLIENT_SECRET", "test-client-secret")
    os.environ.setdefault("STATE_COOKIE_SECURE", "false")


def _pem_pair(private_key) -> tuple[str, str]:
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


@pytest.fixture(scope="session")
def apple_keys():
    """
    Generates RSA keys standing in for Apple's identity token signing keys.
    Returns:
        tuple: (private_pem, public_pem, jwks, untrusted_private_pem)
    """
    private_pem, public_pem = _pem_pair(rsa.generate_private_key(public_exponent=65537, key_size=2048))
    public_jwk = {
        **JsonWebKey.import_key(public_pem, {"kty": "RSA"}).as_dict(),
        "kid": TEST_KID,
        "alg": "RS256",
        "use": "sig",
    }
    untrusted_private_pem, _ = _pem_pair(rsa.generate_private_key(public_exponent=65537, key_size=2048))
    return private_pem, public_pem, {"keys": [public_jwk]}, untrusted_private_pem


@pytest.fixture(scope="session")
def client_secret_key():
    """
    EC P-256 key pair like the .p8 key Apple issues for client secrets.
    Returns:
        tuple: (private_pem, public_pem)
    """
    return _pem_pair(ec.generate_private_key(ec.SECP256R1()))


@pytest.fixture(scope="session")
def make_id_token(apple_keys):
    """Factory signing an identity token the way Apple does."""
    private_pem, _, _, _ = apple_keys

    def _make(claims_override: dict | None = None, key: str | None = None, kid: str = TEST_KID) -> str:
        now = int(time.time())
        claims = {
            "iss": APPLE_ISSUER,
            "aud": TEST_CLIENT_ID,
            "exp": now + 600,
            "iat": now,
            "sub": "001234.abcdef.0987",
            "email": "user@privaterelay.appleid.com",
            "email_verified": "true",
        }
        claims.update(claims_override or {})
        header = {"alg": "RS256", "kid": kid}
        return jwt.encode(header, claims, key or private_pem).decode("utf-8")

    return _make


@pytest.fixture
def strategy_config() -> StrategyConfig:
    return StrategyConfig(client_id=TEST_CLIENT_ID, client_secret="static-secret")


@pytest.fixture
def token_result() -> TokenResult:
    return TokenResult(
        access_token="apple-access-token",
        refresh_token="apple-refresh-token",
        expires_at=int(time.time()) + 3600,
        token_type="Bearer",
        other_params={"id_token": "header.payload.signature", "scope": "name email"},
    )


@pytest.fixture
def oauth_client(strategy_config, token_result) -> AppleOAuthClient:
    """Real authorize URL building, mocked code exchange."""
    client = AppleOAuthClient(strategy_config)
    client.get_access_token = AsyncMock(return_value=token_result)
    return client


@pytest.fixture
def id_token_decoder() -> MagicMock:
    decoder = MagicMock(spec=AppleIdentityTokenDecoder)
    decoder.decode = AsyncMock(return_value={"sub": "U1", "email": "a@b.com"})
    return decoder


@pytest.fixture
def apple_strategy(strategy_config, oauth_client, id_token_decoder) -> AppleStrategy:
    return AppleStrategy(strategy_config, oauth_client=oauth_client, id_token_decoder=id_token_decoder)


@pytest.fixture
def make_ctx():
    def _make(params: dict | None = None, request_options: dict | None = None) -> RequestContext:
        return RequestContext(
            provider="apple",
            params=params or {},
            callback_url=CALLBACK_URL,
            request_options=request_options or {},
        )

    return _make
