from pydantic import BaseModel
from typing import Optional, Literal


RoleType = Literal["tenant", "agent", "landlord", "admin"]


class TokenData(BaseModel):
    """Claims read from a bearer token minted by the identity service."""

    actor_id: str
    role: Optional[RoleType] = None
    agency_id: Optional[str] = None


class Actor(BaseModel):
    """Whoever is calling the API. ``id`` becomes a message's sender_id."""

    id: str
    role: Optional[RoleType] = None
    agency_id: Optional[str] = None
