"""API routes."""

from replyscope_core.api.routes import auth, reports

__all__ = ["auth", "reports"]
