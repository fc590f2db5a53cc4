"""Negotiation endpoint for persistent hub connections."""

from __future__ import annotations

import uuid

from flask import Blueprint, jsonify, request

from ..exceptions import NotFoundError
from ..security.authentication import current_principal
from ..security.authorization import authorize

__all__ = ["create_hubs_blueprint"]

_TRANSPORTS = ("WebSockets", "ServerSentEvents", "LongPolling")


def create_hubs_blueprint(known_hubs: tuple[str, ...] = ()) -> Blueprint:
    """Hub endpoints live under ``/hubs/`` and accept ``?access_token=``."""

    blueprint = Blueprint("hubs", __name__, url_prefix="/hubs")
    hubs = frozenset(hub.lower() for hub in known_hubs)

    @blueprint.post("/<hub>/negotiate")
    @authorize()
    def negotiate(hub: str):
        """Open a hub connection for the authenticated caller.

        Browsers cannot set headers on persistent connections, so this endpoint
        also reads the bearer token from the ``access_token`` query parameter.
        """

        if hubs and hub.lower() not in hubs:
            raise NotFoundError(f"Unknown hub {hub}")
        principal = current_principal()
        return jsonify(
            {
                "hub": hub,
                "connectionId": uuid.uuid4().hex,
                "negotiateVersion": request.args.get("negotiateVersion", default=0, type=int),
                "user": principal.name,
                "availableTransports": [
                    {"transport": name, "transferFormats": ["Text", "Binary"]}
                    for name in _TRANSPORTS
                ],
            }
        )

    return blueprint
