# inklink/api/v1/api.py

from fastapi import APIRouter
from inklink.api.v1.endpoints import (
    appointments,
    health,
    notifications,
    offers,
    payments,
    requests,
)

# This is the main router for the v1 API.
# It will include all the specific endpoint routers.
api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(requests.router)
api_router.include_router(offers.router)
api_router.include_router(appointments.router)
api_router.include_router(payments.router)
api_router.include_router(notifications.router)
