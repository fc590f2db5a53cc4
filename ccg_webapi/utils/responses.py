"""Utilities for building JSON API responses."""

from typing import Any, Dict, Mapping, Optional

from flask import g, has_request_context, jsonify


def error_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
):
    """Return a JSON error envelope with the provided status code and message."""

    payload: Dict[str, Any] = {"error": {"code": status_code, "message": message}}
    if details:
        payload["error"]["details"] = details
    if has_request_context():
        request_id = getattr(g, "request_id", None)
        if request_id:
            payload["error"]["request_id"] = request_id
    response = jsonify(payload)
    response.status_code = status_code
    if headers:
        for name, value in headers.items():
            response.headers[name] = value
    return response
