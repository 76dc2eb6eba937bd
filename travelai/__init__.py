"""travelai plugin core: tenant-scoped plugin API and user settings lifecycle."""

from .app_factory import create_app

__all__ = ["create_app"]
