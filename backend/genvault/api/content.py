from __future__ import annotations
"""Unified content read path."""

import logging
from datetime import timezone
from email.utils import format_datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from genvault.api.deps import get_content_proxy
from genvault.config import Settings, get_settings
from genvault.errors import ValidationError
from genvault.services.content_address import strip_duplicate_container
from genvault.services.content_proxy import ContentProxy, ProxiedContent

logger = logging.getLogger(__name__)

router = APIRouter()


def content_response(content: ProxiedContent, headers: Optional[dict[str, str]] = None) -> Response:
    """Render proxied bytes with their caching headers."""
    out = {"Cache-Control": content.cache_control}
    if content.etag:
        out["ETag"] = content.etag
    if content.last_modified is not None:
        modified = content.last_modified
        if modified.tzinfo is None:
            modified = modified.replace(tzinfo=timezone.utc)
        out["Last-Modified"] = format_datetime(modified.astimezone(timezone.utc), usegmt=True)
    out.update(headers or {})
    return Response(content=content.body, media_type=content.content_type, headers=out)


@router.get("")
async def get_content(
    ref: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    proxy: ContentProxy = Depends(get_content_proxy),
    settings: Settings = Depends(get_settings),
):
    """Serve any reference form: provider URL, durable URL or durable path.

    ``path`` is accepted as an alias of ``ref`` for older clients, with their
    doubled container prefix removed.
    """
    target = ref or (strip_duplicate_container(path, settings) if path else None)
    if not target:
        raise ValidationError("Query parameter 'ref' is required")
    return content_response(await proxy.fetch(target))
