# routes.py
from fastapi import FastAPI
from controller.conversion_controller import conversion_router, status_router
from controller.file_controller import file_router
from controller.upload_controller import upload_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(upload_router)
    app.include_router(conversion_router)
    app.include_router(status_router)
    app.include_router(file_router)
