"""
Identity-provider token verification.

Sign-in happens at an external provider; requests carry its signed JWT as a
bearer token. Only the verified ``email`` claim is used to identify the user.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import jwt

from manabi.config import get_settings
from manabi.errors import AuthenticationError


@lru_cache
def _load_public_key(path: str) -> str:
    return Path(path).read_text()


def reset_keys() -> None:
    """Forget the cached public key (tests swap keys between runs)."""
    _load_public_key.cache_clear()


def _verification_key() -> str:
    settings = get_settings()
    if settings.idp_public_key_path:
        return _load_public_key(settings.idp_public_key_path)
    if settings.idp_jwt_secret:
        return settings.idp_jwt_secret
    msg = "No identity provider key configured"
    raise AuthenticationError(msg)


def verify_identity_token(token: str) -> dict[str, Any]:
    """
    Verify the provider's token and return its claims.

    Raises:
        AuthenticationError: bad signature, expired, wrong issuer or audience,
            missing email, or an email the provider marks as unverified.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["exp"]}
    kwargs: dict[str, Any] = {}
    if settings.idp_audience:
        kwargs["audience"] = settings.idp_audience
    else:
        options["verify_aud"] = False
    if settings.idp_issuer:
        kwargs["issuer"] = settings.idp_issuer

    try:
        claims = jwt.decode(
            token,
            _verification_key(),
            algorithms=[settings.idp_jwt_algorithm],
            options=options,
            **kwargs,
        )
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid or expired token") from e

    email = str(claims.get("email") or "").strip().lower()
    if not email:
        raise AuthenticationError("Token has no email claim")
    if claims.get("email_verified") is False:
        raise AuthenticationError("Email address is not verified")
    claims["email"] = email
    return claims
