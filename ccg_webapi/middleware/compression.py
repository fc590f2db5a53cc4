"""Response compression negotiated from ``Accept-Encoding``."""

from __future__ import annotations

import gzip

import brotli
from flask import Flask, Response, request

__all__ = ["configure_compression", "negotiate_encoding"]

_AVAILABLE_ENCODINGS = ("br", "gzip")

_COMPRESSIBLE_MIMETYPES = {
    "application/json",
    "application/javascript",
    "application/xml",
    "application/xhtml+xml",
    "application/yaml",
    "application/problem+json",
    "image/svg+xml",
}


def _parse_accept_encoding(header_value: str) -> list[tuple[str, float]]:
    encodings: list[tuple[str, float]] = []
    for part in header_value.split(","):
        token = part.strip()
        if not token:
            continue
        encoding, *params = [segment.strip() for segment in token.split(";")]
        q = 1.0
        for param in params:
            if param.startswith("q="):
                try:
                    q = float(param[2:])
                except ValueError:
                    q = 0.0
        encodings.append((encoding.lower(), q))
    # sort() is stable, so equal q-values keep the client's order.
    encodings.sort(key=lambda item: item[1], reverse=True)
    return encodings


def negotiate_encoding(
    header_value: str, available: tuple[str, ...] = _AVAILABLE_ENCODINGS
) -> str | None:
    """Return the best encoding the client accepts, or ``None``."""

    for encoding, quality in _parse_accept_encoding(header_value):
        if quality <= 0:
            continue
        if encoding in available:
            return encoding
        if encoding == "*" and available:
            return available[0]
    return None


def _is_compressible(mimetype: str) -> bool:
    mimetype = mimetype.lower()
    return mimetype.startswith("text/") or mimetype in _COMPRESSIBLE_MIMETYPES


def _merge_vary(response: Response, value: str) -> None:
    existing = response.headers.get("Vary")
    if not existing:
        response.headers["Vary"] = value
        return
    values = {item.strip() for item in existing.split(",") if item.strip()}
    values.add(value)
    response.headers["Vary"] = ", ".join(sorted(values))


def configure_compression(app: Flask) -> None:
    """Register an ``after_request`` hook that compresses responses."""

    if not app.config.get("COMPRESSION_ENABLED", True):
        return

    min_size = int(app.config.get("COMPRESSION_MIN_SIZE", 512))
    gzip_level = int(app.config.get("COMPRESSION_GZIP_LEVEL", 6))
    brotli_quality = int(app.config.get("COMPRESSION_BR_QUALITY", 5))

    def _compress(data: bytes, encoding: str) -> bytes:
        if encoding == "gzip":
            return gzip.compress(data, compresslevel=gzip_level)
        if encoding == "br":
            return brotli.compress(data, quality=brotli_quality)
        raise ValueError(f"Unsupported encoding: {encoding}")

    def _should_compress(response: Response) -> bool:
        if response.direct_passthrough or response.is_streamed:
            return False
        if request.method == "HEAD":
            return False
        if response.status_code < 200 or response.status_code >= 300:
            return False
        if "Content-Encoding" in response.headers:
            return False
        if not _is_compressible(response.mimetype or ""):
            return False
        length = response.calculate_content_length()
        if length is None:
            length = len(response.get_data())
        return length >= min_size

    @app.after_request
    def _compress_response(response: Response) -> Response:
        if not _should_compress(response):
            return response

        _merge_vary(response, "Accept-Encoding")
        encoding = negotiate_encoding(request.headers.get("Accept-Encoding", ""))
        if not encoding:
            return response

        response.set_data(_compress(response.get_data(), encoding))
        response.headers["Content-Encoding"] = encoding
        return response
