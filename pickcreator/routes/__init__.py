from .deals import router as deals_router
from .admin import router as admin_router

__all__ = [
    "deals_router",
    "admin_router",
]
