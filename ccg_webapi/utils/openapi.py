"""Generation of the OpenAPI description from the registered routes."""

from __future__ import annotations

import inspect
import os
import re
from typing import Any, Callable, Dict

import yaml
from flask import Flask

from ..security.authentication import BEARER_SCHEME

__all__ = ["SECURITY_SCHEME_DESCRIPTION", "generate_openapi_document"]

SECURITY_SCHEME_DESCRIPTION = "Enter JWT Bearer token **_only_**"

_HIDDEN_ENDPOINTS = {"static", "error", "metrics_endpoint"}
_DOCUMENTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
_CONVERTER_PATTERN = re.compile(r"<(?:(?P<converter>[a-zA-Z_][a-zA-Z0-9_]*)(?:\([^)]*\))?:)?(?P<name>[a-zA-Z_][a-zA-Z0-9_]*)>")
_CONVERTER_SCHEMAS = {
    "int": {"type": "integer"},
    "float": {"type": "number"},
    "uuid": {"type": "string", "format": "uuid"},
}


def _openapi_path(rule: str) -> tuple[str, list[Dict[str, Any]]]:
    parameters: list[Dict[str, Any]] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group("name")
        converter = match.group("converter") or "string"
        parameters.append(
            {
                "name": name,
                "in": "path",
                "required": True,
                "schema": dict(_CONVERTER_SCHEMAS.get(converter, {"type": "string"})),
            }
        )
        return "{" + name + "}"

    return _CONVERTER_PATTERN.sub(_replace, rule), parameters


def _docstring_parts(view: Callable[..., Any]) -> tuple[str | None, str | None]:
    doc = inspect.getdoc(view)
    if not doc:
        return None, None
    summary, _, rest = doc.partition("\n")
    return summary.strip() or None, rest.strip() or None


def _apply_token_requirements(operation: Dict[str, Any], view: Callable[..., Any]) -> None:
    """Mark protected operations and document their challenge responses."""

    if not getattr(view, "requires_auth", False):
        operation["security"] = []
        return
    operation["responses"]["401"] = {"description": "Missing or invalid bearer token."}
    policy = getattr(view, "authorization_policy", None)
    if policy:
        operation["responses"]["403"] = {"description": f"Caller does not satisfy policy {policy}."}
        operation["x-authorization-policy"] = policy


def generate_openapi_document(app: Flask) -> Dict[str, Any]:
    """Build, cache and optionally persist the OpenAPI document for ``app``."""

    title = app.config.get("SOLUTION_NAME", "CCG")
    version = app.config.get("API_VERSION", "v1")

    paths: Dict[str, Dict[str, Any]] = {}
    tags: set[str] = set()
    for rule in sorted(app.url_map.iter_rules(), key=lambda item: item.rule):
        if rule.endpoint in _HIDDEN_ENDPOINTS or rule.endpoint.startswith("swagger."):
            continue
        view = app.view_functions.get(rule.endpoint)
        if view is None:
            continue
        path, parameters = _openapi_path(rule.rule)
        tag = rule.endpoint.split(".", 1)[0] if "." in rule.endpoint else "host"
        summary, description = _docstring_parts(view)
        for method in _DOCUMENTED_METHODS:
            if method not in (rule.methods or ()):
                continue
            operation: Dict[str, Any] = {
                "operationId": f"{rule.endpoint.replace('.', '_')}_{method.lower()}",
                "summary": summary or rule.endpoint.rsplit(".", 1)[-1].replace("_", " ").title(),
                "tags": [tag],
                "responses": {"200": {"description": "Success"}},
            }
            if description:
                operation["description"] = description
            if parameters:
                operation["parameters"] = [dict(parameter) for parameter in parameters]
            _apply_token_requirements(operation, view)
            paths.setdefault(path, {})[method.lower()] = operation
            tags.add(tag)

    document: Dict[str, Any] = {
        "openapi": "3.0.3",
        "info": {"title": title, "version": version},
        "tags": [{"name": tag} for tag in sorted(tags)],
        "paths": paths,
        "components": {
            "securitySchemes": {
                BEARER_SCHEME: {
                    "type": "http",
                    "scheme": "bearer",
                    "bearerFormat": "JWT",
                    "description": SECURITY_SCHEME_DESCRIPTION,
                }
            }
        },
        "security": [{BEARER_SCHEME: []}],
    }

    output_path = app.config.get("OPENAPI_OUTPUT_PATH")
    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(document, handle, sort_keys=False)

    app.extensions["openapi_document"] = document
    return document
