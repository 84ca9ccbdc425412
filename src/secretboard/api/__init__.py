"""Route aggregation.

All routers registered here get mounted in main.py.

Learn: Unlike a JSON API, nothing here sits under a prefix — these are
browser pages and form posts. Authorization is per route (Depends on
require_user in pages.py) because public and protected pages share
one router.
"""

from fastapi import APIRouter

from secretboard.api.auth import router as auth_router
from secretboard.api.health import router as health_router
from secretboard.api.pages import router as pages_router

app_router = APIRouter()

app_router.include_router(health_router, tags=["health"])
app_router.include_router(pages_router, tags=["pages"])
app_router.include_router(auth_router, tags=["auth"])
