# Routers package
from . import scheduling_router

__all__ = [
    "scheduling_router",
]
