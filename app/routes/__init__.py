from app.routes.auth import router as auth_router
from app.routes.records import router as records_router
from app.routes.review import router as review_router
from app.routes.settings import router as settings_router

__all__ = [
    'auth_router',
    'records_router',
    'review_router',
    'settings_router',
]
