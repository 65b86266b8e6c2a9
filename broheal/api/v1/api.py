from fastapi import APIRouter
from broheal.api.v1.routes.payments import router as payments_router
from broheal.api.v1.routes.therapist import router as therapist_router
from broheal.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(payments_router)
api_router.include_router(therapist_router)
api_router.include_router(admin_router)
