# btu_api/routers/__init__.py
"""
API routers.
"""

from btu_api.routers.health import router as health_router
from btu_api.routers.news import router as news_router
from btu_api.routers.proxy import router as proxy_router

__all__ = [
    "health_router",
    "news_router",
    "proxy_router",
]
