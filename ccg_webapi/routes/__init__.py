"""Route registration for the CCG Web API host."""

from __future__ import annotations

from flask import Flask

from .docs import create_docs_blueprint
from .health import create_health_blueprint
from .hubs import create_hubs_blueprint
from .identity import create_identity_blueprint

__all__ = ["register_blueprints"]


def register_blueprints(app: Flask) -> None:
    """Register the host's controllers and the documentation endpoints."""

    app.register_blueprint(create_health_blueprint())
    app.register_blueprint(create_identity_blueprint())
    app.register_blueprint(create_hubs_blueprint(tuple(app.config.get("HUB_NAMES", ()))))
    app.register_blueprint(create_docs_blueprint(app.config.get("SWAGGER_ROUTE_PREFIX", "swagger")))
