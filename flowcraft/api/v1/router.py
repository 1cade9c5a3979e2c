"""Main API router combining all v1 endpoints"""
from fastapi import APIRouter

from flowcraft.api.v1 import flow_webhooks, flows

api_router = APIRouter()

# Include all routers
api_router.include_router(flows.router, prefix="/flows", tags=["Flows"])
api_router.include_router(flow_webhooks.router, prefix="/flow-webhooks", tags=["Flow Webhooks"])
