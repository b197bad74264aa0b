"""
Client secret generation for Sign In with Apple.

Apple does not issue a static client secret. The secret sent to the token endpoint is an
ES256 JWT signed with the developer's Sign In with Apple private key.
"""

import time

from authlib.jose import jwt

APPLE_AUDIENCE = "https://appleid.apple.com"
# Apple rejects client secrets valid for longer than six months.
MAX_CLIENT_SECRET_TTL = 86400 * 180


def generate_client_secret(
    team_id: str,
    client_id: str,
    key_id: str,
    private_key: str,
    ttl: int = MAX_CLIENT_SECRET_TTL,
    now: int | None = None,
) -> str:
    """
    Build a client secret JWT for Apple's token endpoint.

    Args:
        team_id: Apple developer team ID, used as issuer.
        client_id: Services ID the secret is issued for, used as subject.
        key_id: Key ID of the private key, placed in the `kid` header.
        private_key: PEM encoded EC P-256 private key (.p8 contents).
        ttl: Lifetime in seconds, capped at 180 days.
        now: Issue time as epoch seconds, defaults to the current time.

    Returns:
        The signed JWT as a string.
    """
    issued_at = int(time.time()) if now is None else now
    header = {"alg": "ES256", "kid": key_id}
    payload = {
        "iss": team_id,
        "iat": issued_at,
        "exp": issued_at + min(ttl, MAX_CLIENT_SECRET_TTL),
        "aud": APPLE_AUDIENCE,
        "sub": client_id,
    }
    return jwt.encode(header, payload, private_key).decode("utf-8")
