from __future__ import annotations

from fastapi import Request

from ..messaging import MessageService
from ..topics import TopicRouter


def get_service(request: Request) -> MessageService:
    return request.app.state.service


def get_router(request: Request) -> TopicRouter:
    return request.app.state.router
