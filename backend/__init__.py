"""Destination Configuration Service Backend Package.

This package provides the FastAPI backend for managing destination
configurations, including:

- Schema-driven secret masking and reconciliation
- OAuth parameter masking
- Connector version resolution
- Definition catalog loading

Usage:
    # Development (from project root):
    PYTHONPATH=backend uvicorn app:app --reload --port 8080

    # Production:
    uvicorn app:app --host 0.0.0.0 --port 8080

Modules:
    app: FastAPI application entry point
    config: Environment-driven settings
    destinations: Destination configuration pipeline
    routes: API routers
"""

__version__ = "0.1.0"
