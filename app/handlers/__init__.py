"""Handlers package: JSON API routes and admin bot routers."""
from app.handlers.admin_payouts import router as admin_payouts_router
from app.handlers.api import setup_routes

__all__ = ['admin_payouts_router', 'setup_routes']
