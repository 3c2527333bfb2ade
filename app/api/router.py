from fastapi import APIRouter
from app.modules.directory.router import router as directory_router
from app.modules.schedules.router import router as schedules_router
from app.modules.availability.router import router as availability_router
from app.modules.appointments.router import router as appointments_router
from app.modules.notifications.router import router as notifications_router
from app.modules.audit.router import router as audit_router

api_router = APIRouter()
api_router.include_router(directory_router, tags=["doctors"])
api_router.include_router(schedules_router, tags=["schedules"])
api_router.include_router(availability_router, tags=["availability"])
api_router.include_router(appointments_router, tags=["appointments"])
api_router.include_router(notifications_router, tags=["notifications"])
api_router.include_router(audit_router, tags=["audit"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
