"""Development server support for credential headers spelled with underscores."""

from __future__ import annotations

from typing import Iterable

from werkzeug.serving import WSGIRequestHandler

__all__ = ["build_request_handler"]


def build_request_handler(header_names: Iterable[str]) -> type[WSGIRequestHandler]:
    """Return a request handler that keeps the listed underscore headers.

    Werkzeug drops every request header whose name contains ``_`` so that
    ``X_Foo`` cannot masquerade as ``X-Foo``. The ``access_token`` header is
    spelled with an underscore, so it is passed through explicitly. The
    literal underscore header replaces any dashed variant.
    """

    allowed = frozenset(name.lower() for name in header_names if "_" in name)

    class TokenHeaderRequestHandler(WSGIRequestHandler):
        def make_environ(self):
            environ = super().make_environ()
            for key, value in self.headers.items():
                if key.lower() in allowed:
                    environ[f"HTTP_{key.upper()}"] = value.replace("\r\n", "")
            return environ

    return TokenHeaderRequestHandler
