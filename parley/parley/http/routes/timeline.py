from __future__ import annotations

from fastapi import APIRouter, Depends

from ...messaging import MessageService
from ...store import TimelinePost
from ..deps import get_service
from ..schemas import TimelinePostBody

router = APIRouter(prefix="/api")


@router.get("/timeline", response_model=list[TimelinePost])
async def get_timeline(service: MessageService = Depends(get_service)):
    return await service.list_timeline()


@router.post("/timeline", response_model=TimelinePost)
async def post_timeline(
    body: TimelinePostBody,
    service: MessageService = Depends(get_service),
):
    return await service.post_timeline(body.author, body.text)
