# backend/cv_intelligence/core/auth.py
"""
Identity bridge between the host API and the core.

Tokens are issued and verified by the upstream auth layer; by the time a request
reaches this service the bearer token is the caller's opaque user id. The core
only ever sees the resolved `owner_id`.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException


def resolve_owner(token: str) -> Optional[str]:
    """Map a verified bearer token to an owner id (identity for the default setup)."""
    token = (token or "").strip()
    return token or None


def get_owner_id(authorization: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency: `Authorization: Bearer <token>` -> owner id (401 otherwise)."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Missing bearer token")
    owner = resolve_owner(token)
    if not owner:
        raise HTTPException(status_code=401, detail="Invalid bearer token")
    return owner
