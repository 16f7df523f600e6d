"""API route modules for the destination configuration service.

This package contains focused routers that are registered with the main FastAPI app.

Routers:
- destinations: destination lifecycle and connector specifications
- audit: audit trail listing
"""

from .audit import router as audit_router
from .destinations import destination_error_handler, request_validation_error_handler
from .destinations import router as destinations_router
from .destinations import specifications_router

__all__ = [
    "destinations_router",
    "specifications_router",
    "audit_router",
    "destination_error_handler",
    "request_validation_error_handler",
]
