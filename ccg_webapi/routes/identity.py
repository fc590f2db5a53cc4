"""Endpoints describing the authenticated caller."""

from __future__ import annotations

from flask import Blueprint, jsonify

from ..security.authentication import current_principal
from ..security.authorization import ADMINISTRATOR_POLICY, authorize

__all__ = ["create_identity_blueprint"]


def _describe_principal():
    principal = current_principal()
    return {
        "name": principal.name,
        "roles": list(principal.roles),
        "claims": dict(principal.claims),
        "token_source": principal.source.value,
    }


def create_identity_blueprint() -> Blueprint:
    blueprint = Blueprint("identity", __name__, url_prefix="/api/identity")

    @blueprint.get("/me")
    @authorize()
    def me():
        """Return the identity established from the bearer token.

        The token may arrive in the ``access_token`` header or cookie, or in
        the standard ``Authorization: Bearer`` header.
        """

        return jsonify(_describe_principal())

    @blueprint.get("/admin")
    @authorize(ADMINISTRATOR_POLICY)
    def admin():
        """Return the caller identity; restricted to administrators."""

        payload = _describe_principal()
        payload["administrator"] = True
        return jsonify(payload)

    return blueprint
