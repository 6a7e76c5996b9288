from __future__ import annotations

import secrets
from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from .settings import settings


@dataclass(frozen=True)
class AdminContext:
    actor: str
    bypassed: bool = False


def require_admin(x_admin_api_key: str | None = Header(default=None)) -> AdminContext:
    """Trust gate for admin surfaces; session handling lives in front of this service."""
    if settings.dev_auth_bypass:
        return AdminContext(actor="dev", bypassed=True)
    if not settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="admin access not configured")
    if not x_admin_api_key or not secrets.compare_digest(x_admin_api_key, settings.admin_api_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid admin api key")
    return AdminContext(actor="api-key")
