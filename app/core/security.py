"""
Identity token verification.

Sign-in is handled by an external identity provider. Clients forward the
provider's JWT; this module verifies it locally and turns the claims into an
ExternalIdentity that the Identity Store can upsert.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import jwt

from app.config import settings
from app.core.exceptions import Unauthenticated


@dataclass(frozen=True)
class ExternalIdentity:
    """Verified identity as presented by the identity provider."""

    token_identifier: str
    name: Optional[str] = None
    nickname: Optional[str] = None
    email: Optional[str] = None
    picture: Optional[str] = None


def extract_token_from_header(authorization: Optional[str]) -> str:
    """
    Extract JWT token from Authorization header.

    Args:
        authorization: Authorization header value (e.g., "Bearer <token>")

    Returns:
        Extracted token

    Raises:
        Unauthenticated: If header is missing or malformed
    """
    if not authorization:
        raise Unauthenticated("Missing authorization header")

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated("Invalid authorization header format")

    return parts[1]


def decode_identity_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate an identity provider JWT.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        Unauthenticated: If token is invalid or expired
    """
    options = {
        "verify_exp": True,
        "verify_signature": True,
        "verify_aud": bool(settings.identity_jwt_audience),
    }
    kwargs: Dict[str, Any] = {}
    if settings.identity_jwt_audience:
        kwargs["audience"] = settings.identity_jwt_audience
    if settings.identity_jwt_issuer:
        kwargs["issuer"] = settings.identity_jwt_issuer

    try:
        return jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=settings.get_identity_algorithms(),
            options=options,
            **kwargs
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        raise Unauthenticated(f"Invalid token: {str(e)}")


def identity_from_claims(payload: Dict[str, Any]) -> ExternalIdentity:
    """
    Build an ExternalIdentity from verified JWT claims.

    The token identifier is "<issuer>|<subject>" so identities from different
    issuers never collide.

    Raises:
        Unauthenticated: If the token carries no subject
    """
    subject = payload.get("sub") or payload.get("id")
    if not subject:
        raise Unauthenticated("Token missing subject claim")

    issuer = payload.get("iss") or ""
    return ExternalIdentity(
        token_identifier=f"{issuer}|{subject}",
        name=payload.get("name"),
        nickname=payload.get("nickname") or payload.get("preferred_username"),
        email=payload.get("email"),
        picture=payload.get("picture") or payload.get("image"),
    )


def verify_identity(authorization: Optional[str]) -> ExternalIdentity:
    """Authorization header -> verified ExternalIdentity."""
    token = extract_token_from_header(authorization)
    return identity_from_claims(decode_identity_token(token))


def create_identity_token(
    subject: str,
    claims: Optional[Dict[str, Any]] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Issue an identity token signed with the configured secret.

    Only meaningful with an HMAC algorithm; used by local tooling and tests
    to stand in for the identity provider.

    Example:
        ```python
        token = create_identity_token("user_1", {"name": "Ada", "email": "ada@example.com"})
        ```
    """
    now = datetime.now(timezone.utc)
    to_encode = dict(claims or {})
    to_encode.update({
        "sub": subject,
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
    })
    if settings.identity_jwt_issuer:
        to_encode.setdefault("iss", settings.identity_jwt_issuer)
    if settings.identity_jwt_audience:
        to_encode.setdefault("aud", settings.identity_jwt_audience)

    return jwt.encode(
        to_encode,
        settings.identity_jwt_secret,
        algorithm=settings.get_identity_algorithms()[0]
    )
