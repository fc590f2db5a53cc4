from __future__ import annotations

import pytest
import yaml

from ccg_webapi.app import create_app
from ccg_webapi.utils.openapi import SECURITY_SCHEME_DESCRIPTION

SECRET = "ccg-test-secret-0123456789abcdef0123456789abcdef0123456789abcdef"


@pytest.fixture
def app(tmp_path):
    return create_app(
        {
            "TESTING": True,
            "JWT_SECRET": SECRET,
            "TRACING_ENABLED": False,
            "SOLUTION_NAME": "Orders",
            "OPENAPI_OUTPUT_PATH": str(tmp_path / "docs" / "openapi.yaml"),
        }
    )


@pytest.fixture
def client(app):
    return app.test_client()


def test_swagger_json_describes_bearer_scheme(client):
    response = client.get("/swagger/v1/swagger.json")

    assert response.status_code == 200
    document = response.json
    assert document["openapi"] == "3.0.3"
    assert document["info"] == {"title": "Orders", "version": "v1"}
    assert document["components"]["securitySchemes"]["Bearer"] == {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": SECURITY_SCHEME_DESCRIPTION,
    }
    assert document["security"] == [{"Bearer": []}]


def test_protected_operations_document_challenges(client):
    paths = client.get("/swagger/v1/swagger.json").json["paths"]

    me = paths["/api/identity/me"]["get"]
    admin = paths["/api/identity/admin"]["get"]
    negotiate = paths["/hubs/{hub}/negotiate"]["post"]

    assert "security" not in me
    assert "401" in me["responses"]
    assert "403" not in me["responses"]
    assert admin["x-authorization-policy"] == "RequireAdministratorRole"
    assert "403" in admin["responses"]
    assert me["summary"] == "Return the identity established from the bearer token."
    assert negotiate["parameters"] == [
        {"name": "hub", "in": "path", "required": True, "schema": {"type": "string"}}
    ]


def test_public_operations_opt_out_of_security(client):
    paths = client.get("/swagger/v1/swagger.json").json["paths"]

    assert paths["/health"]["get"]["security"] == []
    assert "/metrics" not in paths
    assert "/error" not in paths
    assert not any(path.startswith("/swagger") for path in paths)


def test_swagger_yaml_matches_json(client):
    as_json = client.get("/swagger/v1/swagger.json").json
    response = client.get("/swagger/v1/swagger.yaml")

    assert response.status_code == 200
    assert response.mimetype == "application/yaml"
    assert yaml.safe_load(response.data) == as_json


def test_unknown_document_version_is_not_found(client):
    response = client.get("/swagger/v2/swagger.json")

    assert response.status_code == 404
    assert response.json["error"]["code"] == 404


def test_swagger_ui_points_at_document(client):
    response = client.get("/swagger/")

    assert response.status_code == 200
    assert response.mimetype == "text/html"
    page = response.get_data(as_text=True)
    assert "./v1/swagger.json" in page
    assert "Orders API v1" in page


def test_document_written_to_output_path(app, tmp_path):
    written = yaml.safe_load((tmp_path / "docs" / "openapi.yaml").read_text(encoding="utf-8"))

    assert written == app.extensions["openapi_document"]
