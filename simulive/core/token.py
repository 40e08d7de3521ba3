"""
Token management and validation logic.
All JWT and authentication dependency operations are centralized here.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from simulive.core.config import settings
from simulive.core.errors import AuthenticationError, PermissionError
from simulive.domain.identity import Identity, role_from_claim, role_to_claim

# HTTP Bearer scheme (Only shows a token input box in Swagger)
# auto_error=False so a missing header surfaces as our 401 instead of a 403
security_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire, "iat": now})

    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )

    return encoded_jwt


def create_identity_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    """Encode an identity (including guest scoping) into an access token"""
    claims = {
        "sub": identity.id,
        "role": role_to_claim(identity.role),
        "name": identity.display_name,
    }
    if identity.email:
        claims["email"] = identity.email
    if identity.guest_session_id:
        claims["session"] = identity.guest_session_id
    return create_access_token(claims, expires_delta)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token string"""
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
        return payload
    except JWTError:
        return None


def verify_token(token: str) -> Optional[str]:
    """Verify token and extract user ID (sub claim)"""
    payload = decode_token(token)
    if payload is None:
        return None

    user_id: Optional[str] = payload.get("sub")
    return user_id


def identity_from_token(token: str) -> Optional[Identity]:
    """Rebuild the caller identity from token claims"""
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        role = role_from_claim(payload.get("role"), payload.get("session"))
    except ValueError:
        return None
    email = payload.get("email")
    return Identity(
        id=payload["sub"],
        display_name=payload.get("name") or (email.split("@")[0] if email else "User"),
        role=role,
        email=email,
    )


async def get_current_identity(
    auth: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security_scheme)],
) -> Identity:
    """
    FastAPI dependency to validate token and return the caller identity.
    Used in protected routes.
    """
    if auth is None or not auth.credentials:
        raise AuthenticationError("Authentication token missing")
    identity = identity_from_token(auth.credentials)
    if identity is None:
        raise AuthenticationError("Could not validate credentials")
    return identity


async def get_current_admin(
    identity: Annotated[Identity, Depends(get_current_identity)],
) -> Identity:
    if not identity.is_admin:
        raise PermissionError(f"Unauthorized role: {identity.role_name}")
    return identity


# Frequently used Dependency Annotation
CurrentIdentityDep = Annotated[Identity, Depends(get_current_identity)]
AdminDep = Annotated[Identity, Depends(get_current_admin)]
