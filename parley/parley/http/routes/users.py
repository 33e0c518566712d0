from __future__ import annotations

from fastapi import APIRouter, Depends

from ...messaging import MessageService
from ...store import User
from ..deps import get_service
from ..schemas import UserBody

router = APIRouter(prefix="/api")


@router.get("/users", response_model=list[User])
async def get_users(service: MessageService = Depends(get_service)):
    return await service.list_users()


@router.post("/users", response_model=User)
async def create_user(
    body: UserBody,
    service: MessageService = Depends(get_service),
):
    return await service.register_user(body.name)
