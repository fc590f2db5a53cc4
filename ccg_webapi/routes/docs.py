"""Blueprint exposing the OpenAPI document and the Swagger UI page."""

from __future__ import annotations

from html import escape

from flask import Blueprint, abort, current_app, jsonify
import yaml

from ..utils.openapi import generate_openapi_document

__all__ = ["create_docs_blueprint"]

_SWAGGER_UI_VERSION = "5.17.14"

_SWAGGER_UI_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@{version}/swagger-ui.css">
</head>
<body>
  <div id="swagger-ui"></div>
  <script src="https://unpkg.com/swagger-ui-dist@{version}/swagger-ui-bundle.js"></script>
  <script>
    window.ui = SwaggerUIBundle({{
      urls: [{{url: "{document_url}", name: "{name}"}}],
      dom_id: "#swagger-ui",
      persistAuthorization: true
    }});
  </script>
</body>
</html>
"""


def _document():
    document = current_app.extensions.get("openapi_document")
    if document is None:
        document = generate_openapi_document(current_app)
    return document


def create_docs_blueprint(route_prefix: str = "swagger") -> Blueprint:
    """Serve ``/<prefix>/v1/swagger.json`` (and ``.yaml``) plus the UI at ``/<prefix>``."""

    blueprint = Blueprint("swagger", __name__, url_prefix=f"/{route_prefix.strip('/')}")

    @blueprint.get("/<version>/swagger.json")
    def swagger_json(version: str):
        document = _document()
        if version != document["info"]["version"]:
            abort(404)
        return jsonify(document)

    @blueprint.get("/<version>/swagger.yaml")
    def swagger_yaml(version: str):
        document = _document()
        if version != document["info"]["version"]:
            abort(404)
        payload = yaml.safe_dump(document, sort_keys=False)
        response = current_app.response_class(payload, mimetype="application/yaml")
        response.headers.setdefault("Cache-Control", "no-cache")
        return response

    @blueprint.get("/")
    def swagger_ui():
        solution = current_app.config.get("SOLUTION_NAME", "CCG")
        version = current_app.config.get("API_VERSION", "v1")
        page = _SWAGGER_UI_PAGE.format(
            title=escape(solution),
            version=_SWAGGER_UI_VERSION,
            document_url=f"./{escape(version)}/swagger.json",
            name=escape(f"{solution} API {version}"),
        )
        return current_app.response_class(page, mimetype="text/html")

    return blueprint
