"""API routers."""
from .monitors import router as monitors_router
from .status import router as status_router
from .integrations import router as integrations_router

__all__ = ["monitors_router", "status_router", "integrations_router"]
