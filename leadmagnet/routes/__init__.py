# leadmagnet/routes/__init__.py
"""
API route handlers organized by domain.
"""

from leadmagnet.routes.health import router as health_router
from leadmagnet.routes.lead_magnet import router as lead_magnet_router

__all__ = [
    "health_router",
    "lead_magnet_router",
]
