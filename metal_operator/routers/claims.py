"""Create, read and release claims."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from metal_operator.dependencies import get_store
from metal_operator.models.api import ClaimCreateRequest, ClaimList
from metal_operator.models.claim import Claim
from metal_operator.models.meta import ObjectMeta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/namespaces/{namespace}/claims", tags=["claims"])


@router.get("", response_model=ClaimList)
async def list_claims(namespace: str, store=Depends(get_store)) -> ClaimList:
    return ClaimList(items=await store.list(Claim, namespace))


@router.post("", response_model=Claim, status_code=201)
async def create_claim(namespace: str, body: ClaimCreateRequest, store=Depends(get_store)) -> Claim:
    claim = Claim(
        metadata=ObjectMeta(name=body.name, namespace=namespace, labels=body.labels),
        spec=body.spec,
    )
    created = await store.create(claim)
    logger.info("Claim %s created for host %s", created.key, created.spec.hostRef.name)
    return created


@router.get("/{name}", response_model=Claim)
async def get_claim(namespace: str, name: str, store=Depends(get_store)) -> Claim:
    return await store.get(Claim, name, namespace)


@router.delete("/{name}", status_code=202)
async def delete_claim(namespace: str, name: str, store=Depends(get_store)) -> Response:
    """Request release; the claim disappears once its host and boot configs are cleaned up."""
    await store.delete(Claim, name, namespace)
    logger.info("Claim %s/%s deletion requested", namespace, name)
    return Response(status_code=202)
