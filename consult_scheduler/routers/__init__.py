# Routers package
from . import appointments_router
from . import emergency_router
from . import payments_router
from . import health_router

__all__ = [
    "appointments_router",
    "emergency_router",
    "payments_router",
    "health_router",
]
