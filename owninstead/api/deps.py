"""
Request dependencies: caller identity and app-scoped collaborators.

Identity is asserted by the upstream gateway through ``X-User-Id``; this
service only checks the shared bearer token.
"""

import logging
import secrets
from datetime import date
from typing import Optional

from fastapi import Header, HTTPException, Request

from owninstead.config import settings
from owninstead.scheduler.dispatch import JobDispatcher
from owninstead.utils.time import local_today

logger = logging.getLogger(__name__)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
) -> str:
    expected = settings.API_TOKEN
    if not expected:
        logger.error("API_TOKEN is not configured; rejecting request")
        raise HTTPException(status_code=503, detail="Authentication not configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_dispatcher(request: Request) -> JobDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not available")
    return dispatcher


def get_today() -> date:
    return local_today(settings.TIMEZONE)
