"""Liveness endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

__all__ = ["create_health_blueprint"]


def create_health_blueprint() -> Blueprint:
    blueprint = Blueprint("health", __name__)

    @blueprint.get("/health")
    def health():
        """Report that the host is serving requests."""

        return jsonify(
            {
                "status": "ok",
                "service": current_app.config.get("SOLUTION_NAME", "CCG"),
                "version": current_app.config.get("API_VERSION", "v1"),
            }
        )

    return blueprint
