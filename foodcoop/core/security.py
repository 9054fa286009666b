from __future__ import annotations

from fastapi import Header
from pydantic import BaseModel

from foodcoop.core.config import get_settings


class Actor(BaseModel):
    id: str


def get_actor(x_actor_id: str | None = Header(default=None)) -> Actor:
    # Authentication happens upstream; this only names who is acting.
    if x_actor_id and x_actor_id.strip():
        return Actor(id=x_actor_id.strip())
    return Actor(id=get_settings().system_actor_id)
