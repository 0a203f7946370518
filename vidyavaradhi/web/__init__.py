# Web Module
"""
HTTP surface (FastAPI):
- app.py: application factory and error rendering
- routes.py: registration, login, session and page routes
- middleware.py: request ids, security headers, API rate limit,
  same-origin check, role-scoped route protection
"""

from .app import create_app

__all__ = ['create_app']
