"""Complaint Tracker - API Routers"""
from .auth import router as auth_router
from .complaints import router as complaints_router

__all__ = [
    "auth_router",
    "complaints_router",
]
