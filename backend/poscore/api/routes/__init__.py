"""API routes."""

import logging
from fastapi import APIRouter

logger = logging.getLogger(__name__)

from poscore.api.routes import orders, kitchen

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(kitchen.router, prefix="/kitchen", tags=["kitchen"])
