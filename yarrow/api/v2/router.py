from fastapi import APIRouter
from yarrow.api.v2 import (
    tickets,
    conversation,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
api_router.include_router(conversation.router, prefix="/tickets", tags=["conversation"])
