from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from app.core.config import settings

router = APIRouter(tags=["App"])


@router.get("", response_class=PlainTextResponse)
def app_info() -> str:
    """Return a short plain-text greeting naming the running application."""

    return f"{settings.app.name} is running ({settings.app_env})"
