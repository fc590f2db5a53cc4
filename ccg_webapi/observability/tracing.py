"""OpenTelemetry tracing configuration."""

from __future__ import annotations

from typing import Any, Callable, Dict
from urllib.parse import parse_qsl

from flask import Flask
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[import-not-found]
    OTLPSpanExporter,
)
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from ..security.token_source import DEFAULT_TOKEN_NAME


_provider: TracerProvider | None = None
_requests_instrumented = False


def _parse_headers(raw: str | None) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for item in (raw or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def _build_exporter(app: Flask) -> SpanExporter | None:
    if exporter := app.config.get("OTEL_SPAN_EXPORTER"):
        return exporter

    exporter_name = str(app.config.get("OTEL_EXPORTER", "none")).lower()
    if exporter_name == "console":
        return ConsoleSpanExporter()
    if exporter_name != "otlp":
        return None

    endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None
    headers = _parse_headers(app.config.get("OTEL_EXPORTER_OTLP_HEADERS"))
    return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)


def _query_token_redactor(token_name: str) -> Callable[[Any, Dict[str, Any]], None]:
    """Build a request hook that keeps hub query tokens out of span attributes."""

    def _redact(span, environ) -> None:
        if span is None or not span.is_recording():
            return
        query = environ.get("QUERY_STRING", "")
        if not any(key == token_name for key, _ in parse_qsl(query, keep_blank_values=True)):
            return
        path = environ.get("PATH_INFO", "")
        host = environ.get("HTTP_HOST") or environ.get("SERVER_NAME", "")
        scheme = environ.get("wsgi.url_scheme", "http")
        span.set_attribute("http.target", path)
        span.set_attribute("http.url", f"{scheme}://{host}{path}")
        span.set_attribute("url.query", "")

    return _redact


def configure_tracing(app: Flask) -> TracerProvider:
    """Instrument Flask and outbound ``requests`` calls with OpenTelemetry."""

    global _provider, _requests_instrumented

    if _provider is None:
        existing = trace.get_tracer_provider()
        if isinstance(existing, TracerProvider):
            _provider = existing
        else:
            resource = Resource.create(
                {
                    "service.name": app.config.get("OTEL_SERVICE_NAME") or "ccg-webapi",
                    "service.namespace": "ccg",
                }
            )
            _provider = TracerProvider(resource=resource)
            trace.set_tracer_provider(_provider)

    exporter = _build_exporter(app)
    if exporter is not None:
        use_simple = bool(app.config.get("OTEL_USE_SIMPLE_PROCESSOR")) or isinstance(
            exporter, ConsoleSpanExporter
        )
        processor_class = SimpleSpanProcessor if use_simple else BatchSpanProcessor
        _provider.add_span_processor(processor_class(exporter))

    if not _requests_instrumented:
        RequestsInstrumentor().instrument(raise_on_double_instrumentation=False)
        _requests_instrumented = True

    FlaskInstrumentor().instrument_app(
        app,
        excluded_urls=r"/health,/metrics",
        request_hook=_query_token_redactor(
            app.config.get("ACCESS_TOKEN_NAME") or DEFAULT_TOKEN_NAME
        ),
    )
    app.extensions["tracer_provider"] = _provider
    return _provider
