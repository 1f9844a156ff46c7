# app/core/router.py
"""
Module for registering routes in the FastAPI application.
"""

from fastapi import FastAPI

from app.reporting.router import router as report_router
from app.logging.router import router as log_router


def register_routes(app: FastAPI) -> None:
    """
    Registers all the routes for the FastAPI application.

    Args:
        app (FastAPI): The FastAPI application instance.
    """
    app.include_router(report_router, prefix="/api")
    app.include_router(log_router, prefix="/api")
