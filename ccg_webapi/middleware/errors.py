"""Global error handling: every failure leaves the host as a JSON envelope."""

from __future__ import annotations

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from ..exceptions import ApiError
from ..security.authentication import BEARER_SCHEME
from ..utils.responses import error_response

__all__ = ["register_error_handlers"]


def register_error_handlers(app: Flask) -> None:
    """Attach error handlers and the ``/error`` fallback endpoint."""

    @app.errorhandler(ApiError)
    def api_error_handler(error: ApiError):
        if error.status_code >= 500:
            app.logger.error(
                "Request failed",
                extra={"path": request.path, "status": error.status_code},
                exc_info=error,
            )
        headers = None
        if error.status_code == 401:
            headers = {"WWW-Authenticate": BEARER_SCHEME}
        return error_response(error.status_code, error.message, error.details or None, headers)

    @app.errorhandler(HTTPException)
    def http_error_handler(error: HTTPException):
        """Return JSON envelopes for Werkzeug HTTP exceptions."""

        status_code = error.code or 500
        message = error.description or error.name or "Error"
        response = error_response(status_code, message)
        valid_methods = getattr(error, "valid_methods", None)
        if status_code == 405 and valid_methods:
            response.headers["Allow"] = ", ".join(sorted(valid_methods))
        return response

    @app.errorhandler(Exception)
    def generic_error_handler(error: Exception):  # noqa: D401 - brief message sufficient
        """Return a JSON envelope for unexpected errors."""

        app.logger.exception(
            "Unhandled exception",
            exc_info=error,
            extra={"path": request.path, "method": request.method},
        )
        return error_response(500, "Internal Server Error")

    @app.route("/error", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    def error():
        return error_response(500, "Internal Server Error")
