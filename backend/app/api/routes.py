from fastapi import APIRouter

from app.api.admin import router as admin_router
from app.api.chats import router as chats_router
from app.api.media import router as media_router
from app.api.users import router as users_router

router = APIRouter()

router.include_router(users_router, prefix="/user", tags=["user"])
router.include_router(chats_router, prefix="/chat", tags=["chat"])
router.include_router(admin_router, prefix="/admin", tags=["admin"])
router.include_router(media_router, prefix="/media", tags=["media"])


@router.get("/", tags=["root"])
def read_root() -> dict[str, str]:
    return {"message": "Welcome to the Parley API"}
