from __future__ import annotations

from fastapi import APIRouter, Depends

from ...messaging import MessageService
from ...store import Server, ServerMessage
from ..deps import get_service
from ..schemas import ServerBody, ServerMessageBody

router = APIRouter(prefix="/api")


@router.get("/servers", response_model=list[Server])
async def get_servers(service: MessageService = Depends(get_service)):
    return await service.list_servers()


@router.post("/servers", response_model=Server)
async def create_server(
    body: ServerBody,
    service: MessageService = Depends(get_service),
):
    return await service.create_server(body.name)


@router.get("/servers/{server_id}", response_model=Server)
async def get_server(
    server_id: str,
    service: MessageService = Depends(get_service),
):
    return await service.get_server(server_id)


@router.post("/servers/{server_id}/messages", response_model=ServerMessage)
async def post_server_message(
    server_id: str,
    body: ServerMessageBody,
    service: MessageService = Depends(get_service),
):
    return await service.post_server_message(
        server_id, body.text, channel_id=body.channel_id, author=body.author
    )
