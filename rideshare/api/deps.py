from typing import Optional

from fastapi import Header, Request

from rideshare.config import Settings
from rideshare.services.errors import NotAuthenticated


async def get_db(request: Request):
    async with request.app.state.database.session() as db:
        yield db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_gateway(request: Request):
    return request.app.state.gateway


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Identity asserted by the auth layer in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise NotAuthenticated()
    return x_user_id.strip()
