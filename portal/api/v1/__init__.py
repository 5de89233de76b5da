from fastapi import APIRouter

from portal.api.v1.routers import (
    activity,
    document_requests,
    documents,
    folders,
    health,
    organizations,
    service_types,
    signatures,
    storage,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(organizations.router)
api_router.include_router(service_types.router)
api_router.include_router(folders.router)
api_router.include_router(documents.router)
api_router.include_router(document_requests.router)
api_router.include_router(signatures.router)
api_router.include_router(activity.router)
api_router.include_router(storage.router)

__all__ = ["api_router"]
