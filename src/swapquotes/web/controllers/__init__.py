"""HTTP controllers for the quote session API.

Controllers only read session state or drive the SwapsController; they never
build or send transactions.
"""

from swapquotes.web.controllers.health import router as health_router
from swapquotes.web.controllers.swaps import router as swaps_router

__all__ = [
    "health_router",
    "swaps_router",
]
