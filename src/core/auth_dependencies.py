"""
FastAPI dependencies for JWT authentication.
The identity provider issues the token; its subject is the session owner id.
"""
import jwt
from fastapi import Header
from typing import Optional
from src.core.config import settings
from src.core.exceptions import AuthenticationException


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Verify JWT token from Authorization header.

    Args:
        authorization: Authorization header value (Bearer <token>)

    Returns:
        Owner id (subject) from token

    Raises:
        AuthenticationException: If token is missing, invalid, or expired
    """
    if not authorization:
        raise AuthenticationException("Missing authorization header")

    if not authorization.startswith('Bearer '):
        raise AuthenticationException("Invalid authorization header format")

    token = authorization[7:]

    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationException("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationException("Invalid token")

    owner_id = payload.get('sub')
    if not owner_id:
        raise AuthenticationException("Invalid token payload")

    return str(owner_id)
