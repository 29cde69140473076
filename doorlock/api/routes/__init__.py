from fastapi import APIRouter

from doorlock.api.routes import access, admin, auth, device, guest, health

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(access.router, tags=["access"])
api_router.include_router(guest.router, prefix="/guest", tags=["guest"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
api_router.include_router(device.router, prefix="/device", tags=["device"])
