from fastapi import APIRouter
from .ws import router as ws_router
from .notifications import router as notifications_router
from .admin_users import router as admin_users_router

router = APIRouter()
router.include_router(ws_router, prefix='/ws', tags=['ws'])
router.include_router(notifications_router, prefix='/notifications', tags=['notifications'])
router.include_router(admin_users_router, prefix='/admin', tags=['admin'])
