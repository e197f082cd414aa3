"""
Bearer-token authentication for the server-side billing endpoints.

Tokens are issued by the dashboard's auth layer with flask-jwt-extended; the
identity claim is the profile id.
"""

import logging
from dataclasses import dataclass

from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from zenith_billing.errors import AuthenticationError
from zenith_billing.extensions import db
from zenith_billing.models import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: str


def extract_bearer_token(auth_header):
    if not auth_header:
        return None
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate(auth_header) -> Identity:
    """Fail closed: any problem with the header, token or user is a 401."""
    if not auth_header:
        raise AuthenticationError("Authorization header is required")

    token = extract_bearer_token(auth_header)
    if token is None:
        raise AuthenticationError("Invalid token or user not found")

    try:
        claims = decode_token(token)
    except (JWTExtendedException, PyJWTError) as e:
        logger.warning("Bearer token rejected", extra={"reason": type(e).__name__})
        raise AuthenticationError("Invalid token or user not found")

    return load_identity(claims.get("sub"))


def load_identity(user_id) -> Identity:
    profile = db.session.get(Profile, user_id) if user_id else None
    if profile is None:
        raise AuthenticationError("Invalid token or user not found")
    return Identity(user_id=profile.id, email=profile.email)
