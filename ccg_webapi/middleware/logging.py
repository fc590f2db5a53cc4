"""Access logging and request correlation."""

import time
import uuid
from typing import Any, Dict

from flask import Flask, Response, g, request
from opentelemetry import trace

UNMATCHED_ROUTE = "<unmatched>"


def _client_ip() -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.remote_addr or ""


def setup_request_logging(app: Flask) -> None:
    """Assign request ids and emit one structured access log line per request."""

    @app.before_request
    def _start_request() -> None:
        g.request_started_at = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def _log_request(response: Response) -> Response:
        started = getattr(g, "request_started_at", None)
        duration_ms = (time.perf_counter() - started) * 1000 if started is not None else None
        # Unmatched paths share one label so scanners cannot grow the registry.
        route = request.url_rule.rule if request.url_rule is not None else UNMATCHED_ROUTE

        # Query strings may carry hub access tokens, so only the path is logged.
        record: Dict[str, Any] = {
            "http_method": request.method,
            "http_path": request.path,
            "http_route": route,
            "status": response.status_code,
            "duration_ms": round(duration_ms, 3) if duration_ms is not None else None,
            "client_ip": _client_ip(),
            "request_id": getattr(g, "request_id", None),
            "token_source": getattr(g, "token_source", None),
            "user_agent": request.headers.get("User-Agent"),
        }
        user_id = getattr(g, "jwt_user_id", None)
        if user_id:
            record["user_id"] = user_id
        if getattr(g, "response_cache_hit", False):
            record["cache"] = "hit"

        context = trace.get_current_span().get_span_context()
        if context and context.trace_id:
            record["trace_id"] = format(context.trace_id, "032x")
        if context and context.span_id:
            record["span_id"] = format(context.span_id, "016x")

        app.logger.info("request completed", extra=record)

        metrics = app.extensions.get("metrics")
        if metrics:
            metrics.observe_http_request(
                method=request.method,
                endpoint=route,
                status=response.status_code,
                duration_seconds=duration_ms / 1000.0 if duration_ms is not None else None,
            )

        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers.setdefault("X-Request-ID", request_id)
        return response
