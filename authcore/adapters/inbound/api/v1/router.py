# authcore/adapters/inbound/api/v1/router.py

from fastapi import APIRouter

from authcore.adapters.inbound.api.v1.endpoints import auth_endpoint, session_endpoint

api_router = APIRouter()

api_router.include_router(auth_endpoint.router, prefix="/auth", tags=["Auth"])
api_router.include_router(session_endpoint.router, prefix="/session", tags=["Session"])
