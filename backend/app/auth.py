"""
Authentication dependencies.

- get_current_user verifies the Supabase JWT from the Authorization header.
  With SUPABASE_JWT_SECRET set it verifies locally with python-jose, otherwise
  it asks the Supabase Auth API.
- get_provider_token reads the Google OAuth token that Supabase handed the
  frontend at sign-in (session.provider_token). The backend never stores it;
  it is forwarded to Gmail for the duration of one request.
"""

import os
from fastapi import HTTPException, Header
from typing import Optional
from jose import jwt, JWTError, ExpiredSignatureError
from app.db import supabase

# ---------------------------------------------------------------------------
# Module-level JWT secret — loaded once at startup.
# Set SUPABASE_JWT_SECRET in your environment (Project Settings > API > JWT Secret).
# When not set the implementation falls back to the Supabase Auth API.
# ---------------------------------------------------------------------------
SUPABASE_JWT_SECRET: Optional[str] = os.environ.get("SUPABASE_JWT_SECRET") or None


async def get_current_user(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify JWT token from Authorization header.

    Args:
        authorization: Authorization header with format "Bearer <token>"

    Returns:
        user_id: Authenticated user's ID (the JWT ``sub`` claim)

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated"
        )

    # Extract token from "Bearer <token>" format
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials"
        )

    token = parts[1]

    if SUPABASE_JWT_SECRET:
        return _verify_jwt_locally(token)

    return await _verify_jwt_remotely(token)


async def get_provider_token(x_provider_token: Optional[str] = Header(None)) -> Optional[str]:
    """
    Return the Google access token sent in X-Provider-Token, or None.

    A missing token is not rejected here: the sync reports it as
    NoProviderTokenError so the client knows to sign in with Google again.
    """
    if x_provider_token is None:
        return None
    token = x_provider_token.strip()
    if token.startswith("Bearer "):
        token = token[len("Bearer "):].strip()
    return token or None


def _verify_jwt_locally(token: str) -> str:
    """
    Verify a Supabase JWT locally using python-jose and return the user ID.

    Supabase issues HS256 JWTs signed with the project's JWT secret.

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False},  # Supabase JWTs use 'authenticated' role, not a fixed audience
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    return user_id


async def _verify_jwt_remotely(token: str) -> str:
    """
    Verify a JWT via the Supabase Auth API (fallback when no JWT secret is set).

    Raises:
        HTTPException 401 on any verification failure.
    """
    try:
        response = supabase.auth.get_user(token)

        if not response.user:
            raise HTTPException(
                status_code=401,
                detail="Invalid token"
            )

        return response.user.id

    except HTTPException:
        raise
    except Exception as e:
        error_msg = str(e).lower()

        if "expired" in error_msg:
            raise HTTPException(
                status_code=401,
                detail="Token expired"
            )

        raise HTTPException(
            status_code=401,
            detail="Invalid token"
        )
