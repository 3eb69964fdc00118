"""Boot record export endpoints."""

from __future__ import annotations

import hashlib

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from metal_operator.adapters.dhcp_export import generate_dnsmasq
from metal_operator.dependencies import get_settings, get_store
from metal_operator.models.core import ConfigMap

router = APIRouter(prefix="/api/v1/boot", tags=["boot"])


def _conditional_response(request: Request, content: str) -> PlainTextResponse:
    """Handle ETag / If-None-Match."""
    etag = '"' + hashlib.md5(content.encode()).hexdigest()[:12] + '"'
    headers = {"ETag": etag}

    if request.headers.get("If-None-Match") == etag:
        return PlainTextResponse(status_code=304, content="", headers=headers)

    return PlainTextResponse(content=content, headers=headers)


@router.get("/dhcp/export/dnsmasq")
async def export_dnsmasq(
    request: Request,
    store=Depends(get_store),
    settings=Depends(get_settings),
) -> PlainTextResponse:
    records = [
        cm
        for cm in await store.list(ConfigMap, settings.boot_namespace)
        if cm.name.startswith("dhcp-") and not cm.being_deleted
    ]
    export = generate_dnsmasq(records)
    return _conditional_response(request, export.content)
