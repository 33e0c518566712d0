from __future__ import annotations

from fastapi import APIRouter, Depends

from ...messaging import MessageService
from ...store import DmMessage, DmThread
from ..deps import get_service
from ..schemas import DmBody

router = APIRouter(prefix="/api")


@router.get("/dms", response_model=list[DmThread])
async def get_dms(service: MessageService = Depends(get_service)):
    return await service.list_dms()


@router.get("/dms/{thread_id}", response_model=DmThread)
async def get_dm_thread(
    thread_id: str,
    service: MessageService = Depends(get_service),
):
    return await service.get_dm_thread(thread_id)


@router.post("/dms", response_model=DmMessage)
async def post_dm(
    body: DmBody,
    service: MessageService = Depends(get_service),
):
    return await service.send_dm(body.sender, body.recipient, body.text)
