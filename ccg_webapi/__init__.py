"""CCG Web API host."""

from .app import create_app

__all__ = ["create_app"]
__version__ = "1.0.0"
