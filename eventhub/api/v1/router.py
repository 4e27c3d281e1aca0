from fastapi import APIRouter

from eventhub.api.v1.admin import router as admin_router
from eventhub.api.v1.projects import router as projects_router
from eventhub.api.v1.requests import router as requests_router
from eventhub.api.v1.users import router as users_router
from eventhub.api.v1.vendors import router as vendors_router

v1_router = APIRouter()

v1_router.include_router(users_router)
v1_router.include_router(vendors_router)
v1_router.include_router(projects_router)
v1_router.include_router(requests_router)
v1_router.include_router(admin_router)
