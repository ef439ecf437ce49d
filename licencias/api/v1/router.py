from fastapi import APIRouter

from licencias.api.v1.endpoints import catalogs, evidence, licenses, profiles

api_router = APIRouter()

api_router.include_router(licenses.router, prefix="/licenses", tags=["Licenses"])
api_router.include_router(evidence.router, prefix="/licenses", tags=["Evidence"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
api_router.include_router(catalogs.router, prefix="/catalogs", tags=["Catalogs"])

__all__ = ["api_router"]
