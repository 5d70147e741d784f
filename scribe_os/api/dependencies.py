"""FastAPI dependencies: practitioner resolution and service access.

The practitioner comes from either
1. a bearer JWT whose ``sub`` is the practitioner id, or
2. the API key (Bearer / X-API-Key) plus an ``X-Practitioner-Id`` header.
Anything else is a 401.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from scribe_os.config import get_settings
from scribe_os.core.auth import decode_token
from scribe_os.core.database import get_db
from scribe_os.core.repository import ProviderRepository
from scribe_os.models.export import PractitionerInfo
from scribe_os.service import ScribeService


def get_service(request: Request) -> ScribeService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return service


def _bearer(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_practitioner(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> PractitionerInfo:
    token = _bearer(request)

    # --- Path 1: JWT ---
    if token:
        claims = decode_token(token)
        if claims and claims.get("type") == "access" and claims.get("sub"):
            practitioner = PractitionerInfo(
                id=str(claims["sub"]),
                first_name=claims.get("given_name") or "",
                last_name=claims.get("family_name") or "",
                specialty=claims.get("specialty"),
            )
            return await _enrich(db, practitioner)

    # --- Path 2: API key ---
    settings = get_settings()
    provided_key = token or request.headers.get("X-API-Key")
    if settings.api_key and provided_key and hmac.compare_digest(provided_key, settings.api_key):
        practitioner_id = request.headers.get("X-Practitioner-Id")
        if not practitioner_id:
            raise HTTPException(status_code=400, detail="X-Practitioner-Id header required")
        return await _enrich(db, PractitionerInfo(id=practitioner_id))

    raise HTTPException(status_code=401, detail="Not authenticated")


async def _enrich(db: AsyncSession, practitioner: PractitionerInfo) -> PractitionerInfo:
    """Fill names and specialty from the provider row when one exists."""
    provider = await ProviderRepository(db).get_active(practitioner.id)
    if provider is None:
        return practitioner
    return PractitionerInfo(
        id=practitioner.id,
        first_name=practitioner.first_name or provider.first_name,
        last_name=practitioner.last_name or provider.last_name,
        specialty=practitioner.specialty or provider.specialty,
    )
