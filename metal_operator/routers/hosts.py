"""Read access to registered hosts."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from metal_operator.dependencies import get_store
from metal_operator.models.api import HostList
from metal_operator.models.host import Host

router = APIRouter(prefix="/api/v1/hosts", tags=["hosts"])


@router.get("", response_model=HostList)
async def list_hosts(store=Depends(get_store)) -> HostList:
    return HostList(items=await store.list(Host))


@router.get("/{name}", response_model=Host)
async def get_host(name: str, store=Depends(get_store)) -> Host:
    return await store.get(Host, name)
